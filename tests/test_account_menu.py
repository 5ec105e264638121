import json
import os
import sys
import tempfile
import unittest
from dataclasses import dataclass
from pathlib import Path
from typing import Any
from unittest import mock

# Ensure local imports work when running this file directly.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

import menus.account_menu as account_menu
from spotify_library import (
    AuthStatus,
    LoginResponse,
    LoginTimeoutError,
    MissingClientCredentialsError,
    PlaylistSummary,
    PlaylistWithTracks,
    RefreshError,
)
from spotify_library.models import CanonicalTrack


@dataclass
class _Askable:
    value: Any

    def ask(self):
        return self.value


class FakeSession:
    def __init__(self, start_error=None, wait_error=None, status_error=None):
        self.start_error = start_error
        self.wait_error = wait_error
        self.status_error = status_error
        self.cancel = None
        self.logged_out = False

    def start_login(self, cancel=None):
        self.cancel = cancel
        if self.start_error is not None:
            raise self.start_error
        return LoginResponse(url="https://accounts.spotify.com/authorize?x=1", redirect_uri="http://127.0.0.1:3000/callback")

    def wait_for_login(self, timeout=None):
        if self.wait_error is not None:
            raise self.wait_error

    def status(self, cancel=None):
        if self.status_error is not None:
            raise self.status_error
        return AuthStatus(authenticated=True, display_name="Test User", user_id="user1")

    def logout(self):
        self.logged_out = True


class TestAccountMenu(unittest.TestCase):
    def test_connect_account_success(self):
        session = FakeSession()
        with mock.patch.object(account_menu.questionary, "confirm", return_value=_Askable(False)):
            self.assertTrue(account_menu.connect_account(session, {"login_timeout": 5}))

    def test_connect_account_survives_status_failure(self):
        session = FakeSession(status_error=RefreshError("unavailable", status_code=503))
        with mock.patch.object(account_menu.questionary, "confirm", return_value=_Askable(False)):
            self.assertTrue(account_menu.connect_account(session, {"login_timeout": 5}))

    def test_connect_account_missing_credentials(self):
        session = FakeSession(start_error=MissingClientCredentialsError("Missing Spotify client id"))
        self.assertFalse(account_menu.connect_account(session, {}))

    def test_connect_account_timeout_cancels_login(self):
        session = FakeSession(wait_error=LoginTimeoutError("no callback"))
        with mock.patch.object(account_menu.questionary, "confirm", return_value=_Askable(False)):
            self.assertFalse(account_menu.connect_account(session, {"login_timeout": 5}))
        self.assertTrue(session.cancel.is_set())

    def test_disconnect_requires_confirmation(self):
        session = FakeSession()
        with mock.patch.object(account_menu.questionary, "confirm", return_value=_Askable(False)):
            account_menu.disconnect(session)
        self.assertFalse(session.logged_out)

        with mock.patch.object(account_menu.questionary, "confirm", return_value=_Askable(True)):
            account_menu.disconnect(session)
        self.assertTrue(session.logged_out)

    def test_export_playlist_writes_json(self):
        data = PlaylistWithTracks(
            playlist=PlaylistSummary(id="pl", name="Road/Trip", tracks_total=1),
            tracks=[CanonicalTrack(spotify_id="t1", name="Song", artists="Artist")],
        )
        with tempfile.TemporaryDirectory() as td:
            path = account_menu.export_playlist(data, os.path.join(td, "exports"))
            self.assertEqual(os.path.basename(path), "Road-Trip.json")
            with open(path, "r", encoding="utf-8") as f:
                exported = json.load(f)

        self.assertEqual(exported["playlist"]["id"], "pl")
        self.assertEqual(exported["tracks"][0]["spotify_id"], "t1")

    def test_exit_leaves_menu_loop(self):
        with mock.patch.object(account_menu.questionary, "select", return_value=_Askable("Exit")):
            account_menu.account_menu(FakeSession(), {})

    def test_format_duration(self):
        self.assertEqual(account_menu._format_duration(215000), "3:35")
        self.assertEqual(account_menu._format_duration(0), "0:00")


if __name__ == "__main__":
    unittest.main(verbosity=2)
