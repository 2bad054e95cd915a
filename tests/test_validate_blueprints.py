"""Tests for the .github/scripts/validate-blueprints.py CI script."""

from __future__ import annotations

import importlib.util
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from tests.conftest import BLUEPRINT1, BLUEPRINT2

SCRIPT = Path(__file__).resolve().parents[1] / ".github" / "scripts" / "validate-blueprints.py"

WEB_BLUEPRINT = """\
description: Blueprint with a custom image
version: 1.0
instances:
  web:
    image: https://images.example.com/web.img
"""


@pytest.fixture(scope="module")
def validator():
    spec = importlib.util.spec_from_file_location("validate_blueprints", SCRIPT)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def tree(tmp_path):
    v1 = tmp_path / "v1"
    v1.mkdir()
    (v1 / "test-blueprint1.yaml").write_text(BLUEPRINT1)
    (v1 / "test-blueprint2.yaml").write_text(BLUEPRINT2)
    (tmp_path / "README.md").write_text("# Blueprints\n")
    return tmp_path


def _response(status):
    resp = MagicMock()
    resp.status_code = status
    return resp


class TestValidateBlueprints:
    def test_find_documents(self, validator, tree):
        assert sorted(validator.find_documents(tree)) == ["test-blueprint1", "test-blueprint2"]

    def test_valid_tree_passes(self, validator, tree, capsys):
        assert validator.main([str(tree)]) == 0
        assert "All checks passed." in capsys.readouterr().out

    def test_invalid_document_fails(self, validator, tree, capsys):
        (tree / "v1" / "broken.yaml").write_text("version: 1\n")
        assert validator.main([str(tree)]) == 1
        assert "[broken] The 'description' key is required for the broken Blueprint" in capsys.readouterr().out

    def test_empty_tree_fails(self, validator, tmp_path):
        assert validator.main([str(tmp_path)]) == 1

    def test_unreachable_image_fails(self, validator, tree, capsys):
        (tree / "v1" / "web.yaml").write_text(WEB_BLUEPRINT)
        with patch.object(validator.requests.Session, "head", return_value=_response(404)):
            assert validator.main([str(tree)]) == 1
        assert "[web] HTTP 404 for https://images.example.com/web.img" in capsys.readouterr().out

    def test_head_rejected_falls_back_to_get(self, validator):
        with (
            patch.object(validator.requests.Session, "head", return_value=_response(405)),
            patch.object(validator.requests.Session, "get", return_value=_response(200)) as mock_get,
        ):
            assert validator.check_url("web", "https://images.example.com/web.img") is None
        mock_get.assert_called_once()

    def test_connection_error_reported(self, validator):
        with patch.object(validator.requests.Session, "head", side_effect=requests.ConnectionError("refused")):
            err = validator.check_url("web", "https://images.example.com/web.img")
        assert err == "[web] ConnectionError: refused for https://images.example.com/web.img"
