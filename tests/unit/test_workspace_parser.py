"""Unit tests for workspace file discovery and validation."""

import os

import pytest

from reactor.models.errors import WorkspaceValidationError
from reactor.services.identity import generate_workspace_hash
from reactor.services.workspace import (
    find_workspace_file,
    load_workspace,
    parse_workspace_file,
)


class TestFindWorkspaceFile:
    def test_finds_yml(self, write_workspace):
        path = write_workspace()
        assert find_workspace_file(path.parent) == path

    def test_finds_yaml(self, write_workspace):
        path = write_workspace(file_name="reactor-workspace.yaml")
        assert find_workspace_file(path.parent) == path

    def test_yml_preferred(self, write_workspace):
        yaml_path = write_workspace(file_name="reactor-workspace.yaml")
        yml_path = write_workspace(file_name="reactor-workspace.yml")
        assert yaml_path.exists()
        assert find_workspace_file(yml_path.parent) == yml_path

    def test_absent_returns_none(self, tmp_path):
        assert find_workspace_file(tmp_path) is None

    def test_defaults_to_cwd(self, write_workspace, monkeypatch):
        path = write_workspace()
        monkeypatch.chdir(path.parent)
        assert find_workspace_file() == path


class TestParseWorkspaceFile:
    """Tests for acceptance and each rejection case."""

    def test_valid_workspace(self, write_workspace):
        path = write_workspace(
            {
                "api": {"path": "./api", "account": "work"},
                "web": {"path": "web"},
            }
        )

        workspace = parse_workspace_file(path)

        assert workspace.version == "1"
        assert set(workspace.services) == {"api", "web"}
        assert workspace.services["api"].account == "work"
        assert workspace.services["web"].account is None
        assert workspace.services["api"].resolved_path == path.parent / "api"
        assert workspace.workspace_hash == generate_workspace_hash(path)
        assert workspace.directory == path.parent

    def test_nested_service_path(self, write_workspace):
        path = write_workspace({"svc": {"path": "services/backend"}})
        workspace = parse_workspace_file(path)
        assert workspace.services["svc"].resolved_path == path.parent / "services" / "backend"

    def test_dot_path_is_workspace_root(self, write_workspace):
        path = write_workspace({"root": {"path": "."}})
        workspace = parse_workspace_file(path)
        assert workspace.services["root"].resolved_path == path.parent

    def test_path_with_inner_parent_segments_stays_inside(self, write_workspace):
        path = write_workspace({"api": {"path": "./api"}})
        (path.parent / "web").mkdir()
        rewritten = path.read_text().replace("./api", "./web/../api")
        path.write_text(rewritten)

        workspace = parse_workspace_file(path)

        assert workspace.services["api"].resolved_path == path.parent / "api"

    def test_integer_version_accepted(self, write_workspace):
        path = write_workspace(version="1")
        assert parse_workspace_file(path).version == "1"

    def test_wrong_version_rejected(self, write_workspace):
        path = write_workspace(version='"2"')
        with pytest.raises(WorkspaceValidationError, match="unsupported workspace version") as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.field == "version"

    def test_missing_version_rejected(self, write_workspace):
        path = write_workspace(body="services:\n  api:\n    path: ./api\n")
        with pytest.raises(WorkspaceValidationError, match="unsupported workspace version"):
            parse_workspace_file(path)

    def test_empty_services_rejected(self, write_workspace):
        path = write_workspace(body='version: "1"\nservices: {}\n')
        with pytest.raises(WorkspaceValidationError, match="at least one service"):
            parse_workspace_file(path)

    def test_missing_services_rejected(self, write_workspace):
        path = write_workspace(body='version: "1"\n')
        with pytest.raises(WorkspaceValidationError, match="at least one service"):
            parse_workspace_file(path)

    def test_services_not_mapping_rejected(self, write_workspace):
        path = write_workspace(body='version: "1"\nservices:\n  - api\n')
        with pytest.raises(WorkspaceValidationError, match="must be a mapping"):
            parse_workspace_file(path)

    def test_missing_path_rejected(self, write_workspace):
        path = write_workspace({"api": {"account": "work"}})
        with pytest.raises(WorkspaceValidationError, match="must define a path") as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.service == "api"

    def test_escaping_relative_path_rejected(self, write_workspace):
        path = write_workspace({"evil": {"path": "../outside"}})
        (path.parent.parent / "outside").mkdir()
        with pytest.raises(WorkspaceValidationError, match="must be within the workspace") as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.service == "evil"

    def test_absolute_path_outside_rejected(self, write_workspace, tmp_path):
        outside = tmp_path / "elsewhere"
        outside.mkdir()
        path = write_workspace({"evil": {"path": str(outside)}})
        with pytest.raises(WorkspaceValidationError, match="must be within the workspace"):
            parse_workspace_file(path)

    def test_absolute_path_inside_accepted(self, write_workspace, tmp_path):
        inside = tmp_path / "workspace" / "api"
        inside.mkdir(parents=True)
        path = write_workspace({"api": {"path": str(inside)}})
        assert parse_workspace_file(path).services["api"].resolved_path == inside

    def test_sibling_prefix_directory_rejected(self, write_workspace, tmp_path):
        # "/x/workspace-other" shares a string prefix with "/x/workspace"
        sibling = tmp_path / "workspace-other"
        sibling.mkdir()
        path = write_workspace({"evil": {"path": "../workspace-other"}})
        with pytest.raises(WorkspaceValidationError, match="must be within the workspace"):
            parse_workspace_file(path)

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks unsupported")
    def test_symlink_escape_rejected(self, write_workspace, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        path = write_workspace({"link": {"path": "./link"}}, create_dirs=False)
        os.symlink(outside, path.parent / "link")
        with pytest.raises(WorkspaceValidationError, match="must be within the workspace"):
            parse_workspace_file(path)

    def test_nonexistent_path_rejected(self, write_workspace):
        path = write_workspace({"ghost": {"path": "./ghost"}}, create_dirs=False)
        with pytest.raises(WorkspaceValidationError, match="does not exist") as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.service == "ghost"

    def test_file_path_rejected(self, write_workspace):
        path = write_workspace({"file": {"path": "./notes.txt"}}, create_dirs=False)
        (path.parent / "notes.txt").write_text("hello")
        with pytest.raises(WorkspaceValidationError, match="is not a directory"):
            parse_workspace_file(path)

    def test_one_bad_service_rejects_whole_file(self, write_workspace):
        path = write_workspace(
            {"good": {"path": "./good"}, "bad": {"path": "../nope"}}
        )
        with pytest.raises(WorkspaceValidationError) as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.service == "bad"

    @pytest.mark.parametrize("account", ["../team/alpha", "team/alpha", "a\\b", ".hidden", "x..y"])
    def test_unsafe_account_rejected(self, write_workspace, account):
        path = write_workspace({"api": {"path": "./api", "account": account}})
        with pytest.raises(WorkspaceValidationError, match="invalid account") as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.service == "api"

    def test_blank_account_means_default(self, write_workspace):
        path = write_workspace({"api": {"path": "./api", "account": "'  '"}})
        assert parse_workspace_file(path).services["api"].account is None

    def test_malformed_yaml_rejected(self, write_workspace):
        path = write_workspace(body="version: [1\nservices: {\n")
        with pytest.raises(WorkspaceValidationError, match="failed to parse"):
            parse_workspace_file(path)

    def test_non_mapping_document_rejected(self, write_workspace):
        path = write_workspace(body="- just\n- a list\n")
        with pytest.raises(WorkspaceValidationError, match="must contain a mapping"):
            parse_workspace_file(path)

    def test_service_definition_not_mapping_rejected(self, write_workspace):
        path = write_workspace(body='version: "1"\nservices:\n  api: ./api\n')
        with pytest.raises(WorkspaceValidationError, match="must be a mapping") as exc_info:
            parse_workspace_file(path)
        assert exc_info.value.service == "api"

    def test_unreadable_file_rejected(self, tmp_path):
        with pytest.raises(WorkspaceValidationError, match="failed to read"):
            parse_workspace_file(tmp_path / "missing.yml")

    def test_error_response_names_service(self, write_workspace):
        path = write_workspace({"ghost": {"path": "./ghost"}}, create_dirs=False)
        with pytest.raises(WorkspaceValidationError) as exc_info:
            parse_workspace_file(path)

        response = exc_info.value.to_response()
        assert response.error_type == "configuration"
        assert response.details[0].field == "ghost"


class TestLoadWorkspace:
    def test_from_directory(self, write_workspace):
        path = write_workspace()
        assert load_workspace(path.parent).file_path == path

    def test_from_file(self, write_workspace):
        path = write_workspace()
        assert load_workspace(path).file_path == path

    def test_missing_in_directory(self, tmp_path):
        with pytest.raises(WorkspaceValidationError, match="found in"):
            load_workspace(tmp_path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(WorkspaceValidationError, match="workspace file not found"):
            load_workspace(tmp_path / "custom.yml")
