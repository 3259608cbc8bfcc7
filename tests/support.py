import os
import tempfile
import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient

from config import get_settings
from database import get_db, init_db
from file_utils import ensure_upload_directories
from mailer import reset_mailer


class SettingsTestCase(unittest.TestCase):
    """Points the settings at a throwaway database and upload folder."""

    extra_env = {}

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp_path = tmp.name
        self.upload_folder = os.path.join(tmp.name, "uploads")

        self.addCleanup(get_settings.cache_clear)
        self.addCleanup(reset_mailer)
        env = patch.dict(os.environ, {
            "MEMORIAL_ENVIRONMENT": "test",
            "MEMORIAL_DATABASE_PATH": os.path.join(tmp.name, "memorial.sqlite3"),
            "MEMORIAL_UPLOAD_FOLDER": self.upload_folder,
            "MEMORIAL_EMAIL_HOST": "",
            **self.extra_env,
        })
        env.start()
        self.addCleanup(env.stop)
        get_settings.cache_clear()
        reset_mailer()

        init_db()
        ensure_upload_directories()

    def stored_files(self, category):
        return sorted(os.listdir(os.path.join(self.upload_folder, category)))

    def query(self, sql, params=()):
        with get_db() as conn:
            cursor = conn.cursor()
            cursor.execute(sql, params)
            rows = cursor.fetchall()
            conn.commit()
            return rows


class ApiTestCase(SettingsTestCase):
    def setUp(self):
        super().setUp()
        from main import create_app
        self.client = TestClient(create_app())

    def register(self, username, email=None, password="secret123"):
        response = self.client.post(
            "/api/auth/register",
            json={"username": username, "email": email or f"{username}@example.com", "password": password},
        )
        self.assertEqual(response.status_code, 201, response.text)
        payload = response.json()
        return payload["token"], payload["user"]

    @staticmethod
    def auth(token):
        return {"Authorization": f"Bearer {token}"}
