"""Tests for the command-line entry point."""

import pytest

from social_publish.cli import cmd_refresh, cmd_status, main
from social_publish.config import SocialConfig
from social_publish.factory import build_app
from social_publish.linkedin import LinkedInConfig
from social_publish.vault import LINKEDIN_TOKEN


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"base_url: https://pub.test\n"
        f"db_path: {tmp_path / 'social.db'}\n"
        f"uploads_path: {tmp_path / 'uploads'}\n",
        encoding="utf-8",
    )
    return path


class TestMain:
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 0
        assert "usage: social-publish" in capsys.readouterr().out

    def test_publish_and_list(self, config_path, capsys):
        assert main(["--config", str(config_path), "publish", "--content", "Hello from the CLI"]) == 0
        out = capsys.readouterr().out
        assert "[PUBLISHED] rss:" in out
        assert "https://pub.test/rss/" in out

        assert main(["--config", str(config_path), "posts"]) == 0
        out = capsys.readouterr().out
        assert "Posts: 1" in out
        assert "Hello from the CLI" in out

    def test_publish_invalid_content(self, config_path, capsys):
        assert main(["--config", str(config_path), "publish", "--content", "   "]) == 1
        assert "Error: Content must be between 1 and 1000 characters" in capsys.readouterr().err

    def test_publish_unconfigured_target(self, config_path, capsys):
        code = main(["--config", str(config_path), "publish", "--content", "Hi", "--targets", "rss,linkedin"])
        assert code == 1
        captured = capsys.readouterr()
        assert "Failed to create post via linkedin (status 503)" in captured.err
        assert "[SUCCESS] rss:" in captured.out
        assert "[ERROR] linkedin: Linkedin integration not configured" in captured.out

    def test_status(self, config_path, capsys):
        assert main(["--config", str(config_path), "status"]) == 0
        out = capsys.readouterr().out
        assert "Base URL: https://pub.test" in out
        assert "Mastodon: not configured" in out
        assert "Twitter:  not configured" in out

    def test_refresh_unconfigured(self, config_path, capsys):
        assert main(["--config", str(config_path), "refresh", "linkedin"]) == 1
        assert "linkedin is not configured." in capsys.readouterr().err

    def test_upload_then_publish_with_image(self, config_path, tmp_path, make_png, capsys):
        image = tmp_path / "cover.png"
        image.write_bytes(make_png(1200, 630))

        assert main(["--config", str(config_path), "upload", str(image), "--alt", "Cover"]) == 0
        lines = capsys.readouterr().out.splitlines()
        uuid = lines[0].split()[1]
        assert lines[0].endswith("(image/png, 33 bytes)")
        assert lines[1].strip() == f"https://pub.test/files/{uuid}"

        assert main(["--config", str(config_path), "publish", "--content", "With a picture", "--image", uuid]) == 0
        assert "[PUBLISHED] rss:" in capsys.readouterr().out

    def test_upload_unsupported_file(self, config_path, tmp_path, capsys):
        notes = tmp_path / "notes.txt"
        notes.write_text("not an image", encoding="utf-8")
        assert main(["--config", str(config_path), "upload", str(notes)]) == 1
        assert "Only PNG and JPEG images are supported" in capsys.readouterr().err

    def test_upload_missing_file(self, config_path, tmp_path, capsys):
        assert main(["--config", str(config_path), "upload", str(tmp_path / "nope.png")]) == 1
        assert "Cannot read" in capsys.readouterr().err


class TestCommands:
    def _app(self, store, transport):
        cfg = SocialConfig(linkedin=LinkedInConfig(client_id="li-id", client_secret="li-secret"))
        return build_app(cfg, transport=transport, store=store)

    def test_refresh(self, store, transport, vault, capsys):
        vault.put(LINKEDIN_TOKEN, {"access_token": "old", "refresh_token": "rt"})
        transport.add("POST", "https://www.linkedin.com/oauth/v2/accessToken",
                      json_body={"access_token": "new", "expires_in": 3600})
        app = self._app(store, transport)

        assert cmd_refresh(app, "linkedin") == 0
        assert "Refreshed linkedin token" in capsys.readouterr().out
        assert vault.get(LINKEDIN_TOKEN).secrets["access_token"] == "new"

    def test_refresh_failure(self, store, transport, vault, capsys):
        vault.put(LINKEDIN_TOKEN, {"access_token": "old", "refresh_token": "rt"})
        transport.add("POST", "https://www.linkedin.com/oauth/v2/accessToken", status=400,
                      json_body={"error": "invalid_grant"})
        app = self._app(store, transport)

        assert cmd_refresh(app, "linkedin") == 1
        assert "Refresh failed" in capsys.readouterr().err
        assert vault.get(LINKEDIN_TOKEN).secrets["access_token"] == "old"

    def test_status_shows_authorization(self, store, transport, vault, capsys):
        vault.put(LINKEDIN_TOKEN, {"access_token": "at"})
        app = self._app(store, transport)

        assert cmd_status(app) == 0
        out = capsys.readouterr().out
        assert "Linkedin: configured, authorized" in out
