import json
import unittest
from unittest.mock import patch

import routes.memorials as memorial_routes
from support import ApiTestCase

JPEG = b"\xff\xd8\xff\xe0fake-jpeg"
MP3 = b"ID3fake-mp3"


class MemorialApiTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        self.token, self.user = self.register("alice")

    def create_memorial(self, token=None, files=None, **fields):
        data = {"name": "Grandma Rose", "birthDate": "1930-04-02", "deathDate": "2020-11-19"}
        data.update(fields)
        return self.client.post(
            "/api/memorials", data=data, files=files, headers=self.auth(token or self.token)
        )

    def test_create_memorial(self):
        response = self.create_memorial(epitaph="Always with us")
        self.assertEqual(response.status_code, 201, response.text)
        memorial = response.json()
        self.assertEqual(memorial["createdBy"], self.user["id"])
        self.assertEqual(memorial["admins"], [self.user["id"]])
        self.assertEqual(memorial["privacy"], "semi-private")
        self.assertEqual(memorial["theme"], "warm")
        self.assertEqual(memorial["birthDate"], "1930-04-02")
        self.assertEqual(memorial["epitaph"], "Always with us")
        self.assertFalse(memorial["hasPassword"])
        self.assertEqual(memorial["views"], 0)
        self.assertEqual(memorial["photos"], [])

    def test_create_requires_login(self):
        response = self.client.post("/api/memorials", data={"name": "x", "birthDate": "1930-04-02", "deathDate": "2020-11-19"})
        self.assertEqual(response.status_code, 401)

    def test_unknown_and_protected_fields_rejected(self):
        response = self.create_memorial(createdBy="999")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Validation failed")

        response = self.create_memorial(views="1000")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.query("SELECT COUNT(*) FROM memorials"), [(0,)])

    def test_missing_required_fields(self):
        response = self.client.post("/api/memorials", data={"name": "  "}, headers=self.auth(self.token))
        self.assertEqual(response.status_code, 400)

    def test_access_password_is_hashed_and_hidden(self):
        memorial = self.create_memorial(password="open-sesame").json()
        self.assertTrue(memorial["hasPassword"])
        self.assertNotIn("password", memorial)
        self.assertNotIn("passwordHash", memorial)
        stored = self.query("SELECT password_hash FROM memorials")[0][0]
        self.assertNotEqual(stored, "open-sesame")

    def test_timeline_and_important_dates_from_json_fields(self):
        timeline = [{"date": "1952-06-01", "title": "Wedding", "isMilestone": True}]
        dates = [{"type": "anniversary", "date": "2020-11-19", "description": "Passing"}]
        memorial = self.create_memorial(timeline=json.dumps(timeline), importantDates=json.dumps(dates)).json()
        self.assertEqual(memorial["timeline"][0]["title"], "Wedding")
        self.assertTrue(memorial["timeline"][0]["isMilestone"])
        self.assertEqual(memorial["importantDates"][0]["type"], "anniversary")

        bad = self.create_memorial(timeline="not json")
        self.assertEqual(bad.status_code, 400)

    def test_main_photo_replacement_keeps_one_file(self):
        created = self.create_memorial(files={"mainPhoto": ("rose.jpg", JPEG, "image/jpeg")})
        self.assertEqual(created.status_code, 201, created.text)
        memorial = created.json()
        first_ref = memorial["mainPhoto"]
        self.assertTrue(first_ref.startswith("/uploads/photos/"))
        self.assertEqual(len(self.stored_files("photos")), 1)

        served = self.client.get(first_ref)
        self.assertEqual(served.status_code, 200)
        self.assertEqual(served.content, JPEG)

        updated = self.client.put(
            f"/api/memorials/{memorial['id']}",
            files={"mainPhoto": ("rose2.jpg", JPEG + b"2", "image/jpeg")},
            headers=self.auth(self.token),
        )
        self.assertEqual(updated.status_code, 200, updated.text)
        second_ref = updated.json()["mainPhoto"]
        self.assertNotEqual(first_ref, second_ref)
        self.assertEqual(self.stored_files("photos"), [second_ref.rsplit("/", 1)[1]])
        self.assertEqual(self.client.get(first_ref).status_code, 404)

    def test_concurrent_slot_replacements_leave_one_file(self):
        memorial = self.create_memorial(files={"mainPhoto": ("rose.jpg", JPEG, "image/jpeg")}).json()
        url = f"/api/memorials/{memorial['id']}"
        save_slot_uploads = memorial_routes.save_slot_uploads
        started, interleaved = [], []

        def save_then_let_other_request_finish(uploads):
            saved = save_slot_uploads(uploads)
            if not started:
                started.append(True)
                interleaved.append(self.client.put(
                    url, files={"mainPhoto": ("b.jpg", JPEG + b"b", "image/jpeg")}, headers=self.auth(self.token)
                ))
            return saved

        with patch("routes.memorials.save_slot_uploads", side_effect=save_then_let_other_request_finish):
            first = self.client.put(
                url, files={"mainPhoto": ("a.jpg", JPEG + b"a", "image/jpeg")}, headers=self.auth(self.token)
            )
        self.assertEqual(first.status_code, 200, first.text)
        self.assertEqual(interleaved[0].status_code, 200, interleaved[0].text)

        current = self.query("SELECT main_photo FROM memorials WHERE id = ?", (memorial["id"],))[0][0]
        self.assertEqual(current, first.json()["mainPhoto"])
        self.assertEqual(self.stored_files("photos"), [current.rsplit("/", 1)[1]])

    def test_failed_cleanup_of_old_slot_file_does_not_abort_update(self):
        memorial = self.create_memorial(files={"mainPhoto": ("rose.jpg", JPEG, "image/jpeg")}).json()
        old_ref = memorial["mainPhoto"]

        with patch("file_utils.os.remove", side_effect=PermissionError("file is locked")), \
                self.assertLogs("file_utils", "WARNING") as logs:
            updated = self.client.put(
                f"/api/memorials/{memorial['id']}",
                files={"mainPhoto": ("rose2.jpg", JPEG + b"2", "image/jpeg")},
                headers=self.auth(self.token),
            )
        self.assertEqual(updated.status_code, 200, updated.text)
        new_ref = updated.json()["mainPhoto"]
        self.assertNotEqual(new_ref, old_ref)
        self.assertTrue(any(old_ref in line and "was not removed" in line for line in logs.output))
        self.assertEqual(len(self.stored_files("photos")), 2)

    def test_blank_update_clears_optional_fields(self):
        memorial = self.create_memorial(
            hometown="Springfield", epitaph="Always with us", password="open-sesame"
        ).json()
        self.assertTrue(memorial["hasPassword"])

        updated = self.client.put(
            f"/api/memorials/{memorial['id']}",
            data={"hometown": "", "epitaph": " ", "password": "", "name": "", "theme": ""},
            headers=self.auth(self.token),
        )
        self.assertEqual(updated.status_code, 200, updated.text)
        body = updated.json()
        self.assertIsNone(body["hometown"])
        self.assertIsNone(body["epitaph"])
        self.assertFalse(body["hasPassword"])
        # blank values for required fields leave them untouched
        self.assertEqual(body["name"], "Grandma Rose")
        self.assertEqual(body["theme"], "warm")

    def test_slot_rejects_wrong_kind_of_file(self):
        response = self.create_memorial(files={"mainPhoto": ("song.mp3", MP3, "audio/mpeg")})
        self.assertEqual(response.status_code, 400)
        response = self.create_memorial(files={"mainPhoto": ("tool.exe", b"MZ", "application/octet-stream")})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["detail"], "Unsupported file type")
        response = self.create_memorial(files={"avatar": ("rose.jpg", JPEG, "image/jpeg")})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(self.stored_files("photos"), [])
        self.assertEqual(self.query("SELECT COUNT(*) FROM memorials"), [(0,)])

    def test_update_fields_and_ownership(self):
        memorial = self.create_memorial().json()
        other_token, _ = self.register("bob")
        forbidden = self.client.put(
            f"/api/memorials/{memorial['id']}", data={"epitaph": "hijacked"}, headers=self.auth(other_token)
        )
        self.assertEqual(forbidden.status_code, 403)

        updated = self.client.put(
            f"/api/memorials/{memorial['id']}",
            data={"epitaph": "Forever loved", "privacy": "public"},
            headers=self.auth(self.token),
        )
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.json()["epitaph"], "Forever loved")
        self.assertEqual(updated.json()["privacy"], "public")
        self.assertEqual(updated.json()["name"], "Grandma Rose")

        missing = self.client.put("/api/memorials/999", data={"epitaph": "x"}, headers=self.auth(self.token))
        self.assertEqual(missing.status_code, 404)

    def test_delete_reclaims_all_files(self):
        memorial = self.create_memorial(files={
            "mainPhoto": ("rose.jpg", JPEG, "image/jpeg"),
            "backgroundMusic": ("song.mp3", MP3, "audio/mpeg"),
        }).json()
        photo = self.client.post(
            f"/api/memorials/{memorial['id']}/photos",
            data={"description": "Summer 1970", "date": "1970-07-01"},
            files={"photo": ("beach.png", b"\x89PNGfake", "image/png")},
            headers=self.auth(self.token),
        )
        self.assertEqual(photo.status_code, 200, photo.text)
        self.assertEqual(photo.json()["photos"][0]["description"], "Summer 1970")
        self.assertEqual(len(self.stored_files("photos")), 2)
        self.assertEqual(len(self.stored_files("audios")), 1)

        other_token, _ = self.register("bob")
        self.assertEqual(
            self.client.delete(f"/api/memorials/{memorial['id']}", headers=self.auth(other_token)).status_code, 403
        )

        deleted = self.client.delete(f"/api/memorials/{memorial['id']}", headers=self.auth(self.token))
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.stored_files("photos"), [])
        self.assertEqual(self.stored_files("audios"), [])
        self.assertEqual(self.client.get(f"/api/memorials/{memorial['id']}").status_code, 404)

    def test_candles_and_flowers_are_anonymous(self):
        memorial = self.create_memorial().json()
        first = self.client.post(f"/api/memorials/{memorial['id']}/candle")
        second = self.client.post(f"/api/memorials/{memorial['id']}/candle")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["count"], 1)
        self.assertEqual(second.json()["count"], 2)

        flower = self.client.post(f"/api/memorials/{memorial['id']}/flower")
        self.assertEqual(flower.json()["count"], 1)
        self.assertEqual(self.client.post("/api/memorials/999/flower").status_code, 404)

    def test_views_increment_on_read(self):
        memorial = self.create_memorial().json()
        self.assertEqual(self.client.get(f"/api/memorials/{memorial['id']}").json()["views"], 1)
        self.assertEqual(self.client.get(f"/api/memorials/{memorial['id']}").json()["views"], 2)

    def test_restricted_memorial_needs_valid_token(self):
        memorial = self.create_memorial(privacy="restricted").json()
        url = f"/api/memorials/{memorial['id']}"
        self.assertEqual(self.client.get(url).status_code, 403)
        self.assertEqual(self.client.get(url, headers=self.auth("garbage")).status_code, 403)
        self.assertEqual(self.client.get(url, headers=self.auth(self.token)).status_code, 200)

    def test_guestbook_messages(self):
        memorial = self.create_memorial().json()
        anonymous = self.client.post(f"/api/memorials/{memorial['id']}/messages", json={"content": "Rest in peace"})
        self.assertEqual(anonymous.status_code, 200)
        signed = self.client.post(
            f"/api/memorials/{memorial['id']}/messages", json={"author": "Tom", "content": "Miss you"}
        )
        messages = signed.json()["messages"]
        self.assertEqual([m["author"] for m in messages], ["Anonymous visitor", "Tom"])

        empty = self.client.post(f"/api/memorials/{memorial['id']}/messages", json={"content": "  "})
        self.assertEqual(empty.status_code, 400)

    def test_public_and_my_listings(self):
        public = self.create_memorial(name="Public One", privacy="public").json()
        private = self.create_memorial(name="Private One", privacy="private").json()

        listed = [m["id"] for m in self.client.get("/api/memorials").json()]
        self.assertEqual(listed, [public["id"]])

        mine = [m["id"] for m in self.client.get("/api/memorials/my", headers=self.auth(self.token)).json()]
        self.assertCountEqual(mine, [public["id"], private["id"]])

    def test_admins_can_attach_media(self):
        memorial = self.create_memorial().json()
        helper_token, helper = self.register("bob")
        url = f"/api/memorials/{memorial['id']}/audios"
        upload = {"file": ("hymn.mp3", MP3, "audio/mpeg")}

        self.assertEqual(self.client.post(url, files=upload, headers=self.auth(helper_token)).status_code, 403)

        added = self.client.post(
            f"/api/memorials/{memorial['id']}/admins", json={"userId": helper["id"]}, headers=self.auth(self.token)
        )
        self.assertEqual(added.json()["admins"], [self.user["id"], helper["id"]])

        attached = self.client.post(url, files=upload, headers=self.auth(helper_token))
        self.assertEqual(attached.status_code, 200, attached.text)
        self.assertEqual(len(attached.json()["audios"]), 1)

        creator_removal = self.client.delete(
            f"/api/memorials/{memorial['id']}/admins/{self.user['id']}", headers=self.auth(self.token)
        )
        self.assertEqual(creator_removal.status_code, 400)
        removed = self.client.delete(
            f"/api/memorials/{memorial['id']}/admins/{helper['id']}", headers=self.auth(self.token)
        )
        self.assertEqual(removed.json()["admins"], [self.user["id"]])

    def test_document_upload(self):
        memorial = self.create_memorial().json()
        response = self.client.post(
            f"/api/memorials/{memorial['id']}/documents",
            data={"title": "Obituary"},
            files={"file": ("obit.pdf", b"%PDF-1.4", "application/pdf")},
            headers=self.auth(self.token),
        )
        self.assertEqual(response.status_code, 200, response.text)
        document = response.json()["documents"][0]
        self.assertEqual(document["title"], "Obituary")
        self.assertEqual(document["type"], "application/pdf")
        self.assertTrue(document["url"].startswith("/uploads/documents/"))


if __name__ == "__main__":
    unittest.main()
