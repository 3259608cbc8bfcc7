import io
import os
import re
import unittest

from starlette.datastructures import Headers, UploadFile

from file_utils import (
    UploadRejected, classify_media_type, delete_media_file, generate_media_filename, is_allowed_upload,
    media_file_path, replace_slot_file, save_upload,
)
from support import SettingsTestCase


def make_upload(filename, content, content_type):
    return UploadFile(file=io.BytesIO(content), filename=filename, headers=Headers({"content-type": content_type}))


class ClassificationTests(unittest.TestCase):
    def test_classify_media_type(self):
        self.assertEqual(classify_media_type("video/mp4"), "videos")
        self.assertEqual(classify_media_type("audio/mpeg"), "audios")
        self.assertEqual(classify_media_type("application/pdf"), "documents")
        self.assertEqual(
            classify_media_type("application/vnd.openxmlformats-officedocument.wordprocessingml.document"), "documents"
        )
        self.assertEqual(classify_media_type("image/png"), "photos")
        self.assertEqual(classify_media_type("text/plain"), "photos")
        self.assertEqual(classify_media_type(None), "photos")

    def test_extension_and_type_must_both_match(self):
        self.assertTrue(is_allowed_upload("Rose.JPG", "image/jpeg"))
        self.assertTrue(is_allowed_upload("song.mp3", "audio/mpeg"))
        self.assertTrue(is_allowed_upload("scan.png", "image/png; charset=binary"))
        self.assertFalse(is_allowed_upload("tool.exe", "image/jpeg"))
        self.assertFalse(is_allowed_upload("rose.jpg", "application/x-msdownload"))
        self.assertFalse(is_allowed_upload("noext", "image/png"))
        self.assertFalse(is_allowed_upload(None, None))

    def test_generated_names(self):
        name = generate_media_filename("Holiday Photo.PNG")
        self.assertRegex(name, r"^\d{13,}-\d+\.png$")
        self.assertEqual(os.path.splitext(generate_media_filename("notes"))[1], "")
        names = {generate_media_filename("a.jpg") for _ in range(50)}
        self.assertEqual(len(names), 50)


class StorageTests(SettingsTestCase):
    extra_env = {"MEMORIAL_MAX_UPLOAD_SIZE": "16"}

    def test_save_and_delete(self):
        reference = save_upload(make_upload("rose.jpg", b"jpeg-bytes", "image/jpeg"))
        self.assertTrue(re.match(r"^/uploads/photos/\d+-\d+\.jpg$", reference))
        path = media_file_path(reference)
        with open(path, "rb") as f:
            self.assertEqual(f.read(), b"jpeg-bytes")

        self.assertTrue(delete_media_file(reference))
        self.assertFalse(os.path.exists(path))
        self.assertFalse(delete_media_file(reference))

    def test_oversize_upload_leaves_nothing_behind(self):
        with self.assertRaises(UploadRejected):
            save_upload(make_upload("big.mp4", b"x" * 17, "video/mp4"))
        self.assertEqual(self.stored_files("videos"), [])

    def test_category_mismatch_rejected(self):
        with self.assertRaises(UploadRejected):
            save_upload(make_upload("song.mp3", b"id3", "audio/mpeg"), "photos")
        self.assertEqual(self.stored_files("photos"), [])
        self.assertEqual(self.stored_files("audios"), [])

    def test_references_outside_upload_root_refused(self):
        self.assertIsNone(media_file_path("/uploads/photos/../../secret.txt"))
        self.assertIsNone(media_file_path("/uploads/unknown/a.jpg"))
        self.assertIsNone(media_file_path("/etc/passwd"))
        self.assertFalse(delete_media_file("/uploads/photos/.."))
        self.assertFalse(delete_media_file(None))

    def test_replace_slot_file(self):
        old = save_upload(make_upload("old.jpg", b"old", "image/jpeg"))
        new = save_upload(make_upload("new.jpg", b"new", "image/jpeg"))
        self.assertFalse(replace_slot_file(new, new))
        self.assertTrue(replace_slot_file(old, new))
        self.assertEqual(self.stored_files("photos"), [new.rsplit("/", 1)[1]])
        self.assertFalse(replace_slot_file(None, new))


if __name__ == "__main__":
    unittest.main()
