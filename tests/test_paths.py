"""Tests for working directory tracking."""

import pytest

from twinsftp.paths import PathModel, cd_back, cd_enter, join_path


class TestJoin:
    @pytest.mark.parametrize("directory", ["/", "/home", "/home/user", "relative/dir"])
    def test_trailing_separator_is_irrelevant(self, directory):
        stripped = directory.rstrip("/") or "/"
        assert join_path(stripped, "x") == join_path(stripped.rstrip("/") + "/", "x")

    def test_join_root(self):
        assert join_path("/", "etc") == "/etc"

    def test_join_nested(self):
        assert join_path("/home/user", "docs") == "/home/user/docs"

    def test_join_empty_directory(self):
        assert join_path("", "name") == "name"


class TestCdBack:
    def test_root_is_fixed_point(self):
        assert cd_back("/") == "/"

    def test_top_level(self):
        assert cd_back("/home") == "/"

    def test_nested(self):
        assert cd_back("/home/user/docs") == "/home/user"

    def test_trailing_separator(self):
        assert cd_back("/home/user/") == "/home"


class TestCdEnter:
    def test_enter(self):
        assert cd_enter("/home", "user") == "/home/user"

    def test_enter_from_root(self):
        assert cd_enter("/", "tmp") == "/tmp"


class TestPathModel:
    def test_enter_and_back(self):
        model = PathModel("/home")
        assert model.enter("user") == "/home/user"
        assert model.path == "/home/user"
        assert model.back() == "/home"
        assert model.back() == "/"
        assert model.back() == "/"

    def test_join_does_not_move(self):
        model = PathModel("/srv")
        assert model.join("www") == "/srv/www"
        assert model.path == "/srv"

    def test_empty_path_becomes_root(self):
        model = PathModel("")
        assert model.path == "/"
        model.path = ""
        assert model.path == "/"

    def test_custom_separator(self):
        model = PathModel("C:\\Users", sep="\\")
        assert model.enter("me") == "C:\\Users\\me"
        assert model.back() == "C:\\Users"
