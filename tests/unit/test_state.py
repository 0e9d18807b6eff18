"""Unit tests for provider/state.py"""

import json
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from provider.exceptions import StateError
from provider.state import ResourceState, State, StateFile


def pipeline_entry():
    return ResourceState(
        "managed",
        "aws_codepipeline",
        "main",
        "test-pipeline",
        {"name": "test-pipeline", "stage": [{"name": "Source"}]},
        provider="aws.east",
        dependencies=["aws_s3_bucket.artifacts"],
    )


class TestResourceState:
    def test_address_and_alias(self):
        entry = pipeline_entry()
        assert entry.address == "aws_codepipeline.main"
        assert entry.provider_alias == "east"
        data_entry = ResourceState("data", "aws_efs_mount_target", "mt", "fsmt-1")
        assert data_entry.address == "data.aws_efs_mount_target.mt"
        assert data_entry.provider_alias == ""

    def test_dict_round_trip(self):
        entry = pipeline_entry()
        assert ResourceState.from_dict(entry.to_dict()) == entry


class TestStateFile:
    def test_missing_file_is_empty(self, tmp_path):
        state = StateFile(str(tmp_path / "state.json")).load()
        assert state.resources == {}
        assert state.serial == 0

    def test_save_and_load(self, tmp_path):
        path = tmp_path / "state.json"
        state_file = StateFile(str(path))
        state = State()
        state.set(pipeline_entry())
        state_file.save(state)
        state_file.save(state)

        loaded = state_file.load()
        assert loaded.serial == 2
        assert loaded.lineage == state.lineage
        assert loaded.addresses() == ["aws_codepipeline.main"]
        assert loaded.get("aws_codepipeline.main").dependencies == ["aws_s3_bucket.artifacts"]
        assert not (tmp_path / "state.json.tmp").exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text("{not json")
        with pytest.raises(StateError):
            StateFile(str(path)).load()

    def test_unsupported_version(self, tmp_path):
        path = tmp_path / "state.json"
        path.write_text(json.dumps({"version": 99, "resources": {}}))
        with pytest.raises(StateError):
            StateFile(str(path)).load()

    def test_address_mismatch(self):
        entry = pipeline_entry().to_dict()
        with pytest.raises(StateError):
            State.from_dict({"version": 1, "resources": {"aws_codepipeline.other": entry}})

    def test_remove(self):
        state = State()
        state.set(pipeline_entry())
        state.remove("aws_codepipeline.main")
        state.remove("aws_codepipeline.main")
        assert state.addresses() == []
