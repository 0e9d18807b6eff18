"""Unit tests for provider/service/codepipeline/pipeline.py"""

import copy
import sys
import unittest
from pathlib import Path
from unittest.mock import MagicMock

sys.path.insert(0, str(Path(__file__).parent.parent.parent))
sys.path.insert(0, str(Path(__file__).parent.parent / "fixtures"))

from fake_aws import FakeSession, client_error

from provider.conns import AWSClient
from provider.exceptions import NotFoundError, ProviderError
from provider.schema import UNKNOWN, ResourceData
from provider.service.codepipeline.pipeline import (
    PIPELINE_SCHEMA,
    find_pipeline_by_name,
    list_pipeline_names,
    list_tags,
    plan_pipeline_changes,
    resource_pipeline,
    validate_pipeline_config,
)

REGION = "us-west-2"
ROLE = "arn:aws:iam::123456789012:role/codepipeline-role"


def pipeline_config(name="test-pipeline", **overrides):
    cfg = {
        "name": name,
        "role_arn": ROLE,
        "artifact_store": [{"location": "artifact-bucket", "type": "S3"}],
        "stage": [
            {
                "name": "Source",
                "action": [
                    {
                        "name": "Source",
                        "category": "Source",
                        "owner": "ThirdParty",
                        "provider": "GitHub",
                        "version": "1",
                        "output_artifacts": ["test"],
                        "configuration": {
                            "Owner": "lifesum-terraform",
                            "Repo": "test",
                            "Branch": "main",
                            "OAuthToken": "super-secret",
                        },
                    }
                ],
            },
            {
                "name": "Build",
                "action": [
                    {
                        "name": "Build",
                        "category": "Build",
                        "owner": "AWS",
                        "provider": "CodeBuild",
                        "version": "1",
                        "input_artifacts": ["test"],
                        "configuration": {"ProjectName": "test"},
                    }
                ],
            },
        ],
        "execution_mode": "SUPERSEDED",
        "pipeline_type": "V1",
    }
    cfg.update(overrides)
    return cfg


class PipelineTestCase(unittest.TestCase):
    def setUp(self):
        self.session = FakeSession()
        self.meta = AWSClient(REGION, session=self.session, account_id="123456789012")
        self.conn = self.meta.client("codepipeline")
        self.resource = resource_pipeline()

    def create(self, cfg):
        d = ResourceData(PIPELINE_SCHEMA, config=cfg)
        self.resource.create(d, self.meta)
        return d

    def update(self, d, cfg):
        updated = ResourceData(PIPELINE_SCHEMA, config=cfg, state=d.state(), id=d.id)
        self.resource.update(updated, self.meta)
        return updated


class TestPipelineCreateRead(PipelineTestCase):
    def test_create_sets_id_and_computed(self):
        d = self.create(pipeline_config())
        self.assertEqual(d.id, "test-pipeline")
        self.assertEqual(
            d.get("arn"), "arn:aws:codepipeline:us-west-2:123456789012:test-pipeline"
        )
        self.assertEqual(d.get("stage.0.action.0.run_order"), 1)
        self.assertEqual(d.get("execution_mode"), "SUPERSEDED")
        self.assertEqual(d.get("pipeline_type"), "V1")

    def test_create_sends_declaration(self):
        self.create(pipeline_config())
        (call,) = self.conn.called("create_pipeline")
        pipeline = call["pipeline"]
        self.assertEqual(pipeline["artifactStore"]["location"], "artifact-bucket")
        self.assertEqual(
            pipeline["stages"][0]["actions"][0]["configuration"]["OAuthToken"], "super-secret"
        )
        self.assertIsNone(call["tags"])

    def test_masked_token_kept_from_state(self):
        d = self.create(pipeline_config())
        self.assertEqual(
            d.get("stage.0.action.0.configuration.OAuthToken"), "super-secret"
        )
        # a refresh without configuration carries the token over from state
        refreshed = ResourceData(PIPELINE_SCHEMA, state=d.state(), id=d.id)
        self.resource.read(refreshed, self.meta)
        self.assertEqual(
            refreshed.get("stage.0.action.0.configuration.OAuthToken"), "super-secret"
        )

    def test_import_read_without_state_leaves_token_empty(self):
        self.create(pipeline_config())
        imported = ResourceData(PIPELINE_SCHEMA, id="test-pipeline")
        self.resource.read(imported, self.meta)
        self.assertEqual(imported.get("stage.0.action.0.configuration.OAuthToken"), "")

    def test_read_gone_clears_id(self):
        d = ResourceData(PIPELINE_SCHEMA, state={"name": "gone"}, id="gone")
        self.resource.read(d, self.meta)
        self.assertEqual(d.id, "")

    def test_read_other_error_propagates(self):
        meta = MagicMock()
        meta.client.return_value.get_pipeline.side_effect = client_error(
            "AccessDeniedException", "GetPipeline"
        )
        d = ResourceData(PIPELINE_SCHEMA, id="test-pipeline")
        with self.assertRaises(Exception) as exc:
            self.resource.read(d, meta)
        self.assertNotIsInstance(exc.exception, NotFoundError)
        self.assertEqual(d.id, "test-pipeline")

    def test_tags_and_default_tags(self):
        meta = AWSClient(
            REGION, session=self.session, account_id="123456789012",
            default_tags={"Owner": "platform"},
        )
        d = ResourceData(PIPELINE_SCHEMA, config=pipeline_config(tags={"Name": "test"}))
        self.resource.create(d, meta)
        (call,) = self.conn.called("create_pipeline")
        self.assertEqual(
            call["tags"],
            [{"key": "Name", "value": "test"}, {"key": "Owner", "value": "platform"}],
        )
        self.assertEqual(d.get("tags"), {"Name": "test"})
        self.assertEqual(d.get("tags_all"), {"Name": "test", "Owner": "platform"})


class TestPipelineUpdate(PipelineTestCase):
    def test_update_in_place_sends_full_declaration(self):
        d = self.create(pipeline_config())
        cfg = pipeline_config()
        cfg["stage"][1]["action"][0]["configuration"]["ProjectName"] = "test-updated"
        updated = self.update(d, cfg)

        (call,) = self.conn.called("update_pipeline")
        stages = call["pipeline"]["stages"]
        self.assertEqual(len(stages), 2)
        self.assertEqual(stages[1]["actions"][0]["configuration"]["ProjectName"], "test-updated")
        self.assertEqual(
            stages[0]["actions"][0]["configuration"]["OAuthToken"], "super-secret"
        )
        self.assertEqual(len(self.conn.called("create_pipeline")), 1)
        self.assertEqual(
            updated.get("stage.1.action.0.configuration.ProjectName"), "test-updated"
        )
        self.assertEqual(self.conn.pipelines["test-pipeline"]["version"], 2)

    def test_no_change_skips_update_call(self):
        d = self.create(pipeline_config())
        self.update(d, pipeline_config())
        self.assertEqual(self.conn.called("update_pipeline"), [])
        self.assertEqual(self.conn.called("tag_resource"), [])

    def test_tags_only_update(self):
        d = self.create(pipeline_config(tags={"Name": "test", "Old": "x"}))
        updated = self.update(d, pipeline_config(tags={"Name": "renamed"}))
        self.assertEqual(self.conn.called("update_pipeline"), [])
        (untag,) = self.conn.called("untag_resource")
        self.assertEqual(untag["tagKeys"], ["Old"])
        (tag,) = self.conn.called("tag_resource")
        self.assertEqual(tag["tags"], [{"key": "Name", "value": "renamed"}])
        self.assertEqual(updated.get("tags"), {"Name": "renamed"})

    def test_rename_refused(self):
        d = self.create(pipeline_config())
        with self.assertRaises(ProviderError):
            self.update(d, pipeline_config(name="other"))
        self.assertEqual(self.conn.called("update_pipeline"), [])


class TestPipelineDelete(PipelineTestCase):
    def test_delete(self):
        d = self.create(pipeline_config())
        self.resource.delete(d, self.meta)
        self.assertNotIn("test-pipeline", self.conn.pipelines)

    def test_delete_missing_is_ignored(self):
        meta = MagicMock()
        meta.client.return_value.delete_pipeline.side_effect = client_error(
            "PipelineNotFoundException", "DeletePipeline"
        )
        self.resource.delete(ResourceData(PIPELINE_SCHEMA, id="gone"), meta)

    def test_delete_other_error_propagates(self):
        meta = MagicMock()
        meta.client.return_value.delete_pipeline.side_effect = client_error(
            "ValidationException", "DeletePipeline"
        )
        with self.assertRaises(Exception):
            self.resource.delete(ResourceData(PIPELINE_SCHEMA, id="p"), meta)


class TestFinders(unittest.TestCase):
    def test_find_not_found(self):
        conn = MagicMock()
        conn.get_pipeline.side_effect = client_error("PipelineNotFoundException", "GetPipeline")
        with self.assertRaises(NotFoundError):
            find_pipeline_by_name(conn, "p")

    def test_find_empty_result(self):
        conn = MagicMock()
        conn.get_pipeline.return_value = {}
        with self.assertRaises(NotFoundError):
            find_pipeline_by_name(conn, "p")

    def test_list_tags_follows_next_token(self):
        conn = MagicMock()
        conn.list_tags_for_resource.side_effect = [
            {"tags": [{"key": "a", "value": "1"}], "nextToken": "t1"},
            {"tags": [{"key": "b", "value": "2"}]},
        ]
        self.assertEqual(list_tags(conn, "arn"), {"a": "1", "b": "2"})
        conn.list_tags_for_resource.assert_called_with(resourceArn="arn", nextToken="t1")

    def test_list_pipeline_names(self):
        conn = MagicMock()
        conn.get_paginator.return_value.paginate.return_value = [
            {"pipelines": [{"name": "a"}]},
            {"pipelines": [{"name": "b"}]},
        ]
        self.assertEqual(list_pipeline_names(conn), ["a", "b"])


class TestPlanAndValidate(PipelineTestCase):
    def test_plan_no_changes_after_create(self):
        d = self.create(pipeline_config())
        self.assertEqual(plan_pipeline_changes(d.state(), pipeline_config(), self.meta), ([], []))

    def test_plan_rename_is_replace(self):
        d = self.create(pipeline_config())
        changed, replace = plan_pipeline_changes(
            d.state(), pipeline_config(name="renamed"), self.meta
        )
        self.assertEqual(changed, ["name"])
        self.assertEqual(replace, ["name"])

    def test_plan_tags(self):
        d = self.create(pipeline_config())
        changed, replace = plan_pipeline_changes(
            d.state(), pipeline_config(tags={"a": "b"}), self.meta
        )
        self.assertEqual(changed, ["tags"])
        self.assertEqual(replace, [])

    def test_plan_default_tags_change(self):
        d = self.create(pipeline_config())
        meta = AWSClient(
            REGION, session=self.session, account_id="123456789012",
            default_tags={"env": "a", "team": "x"},
        )
        changed, replace = plan_pipeline_changes(d.state(), pipeline_config(), meta)
        self.assertEqual(changed, ["tags_all"])
        self.assertEqual(replace, [])

        updated = ResourceData(PIPELINE_SCHEMA, config=pipeline_config(), state=d.state(), id=d.id)
        self.resource.update(updated, meta)
        self.assertEqual(updated.get("tags_all"), {"env": "a", "team": "x"})
        self.assertEqual(self.conn.called("update_pipeline"), [])
        self.assertEqual(plan_pipeline_changes(updated.state(), pipeline_config(), meta), ([], []))

    def test_plan_unknown_falls_back_to_schema_diff(self):
        d = self.create(pipeline_config())
        cfg = pipeline_config(role_arn=UNKNOWN)
        changed, replace = plan_pipeline_changes(d.state(), cfg, self.meta)
        self.assertIn("role_arn", changed)
        self.assertEqual(replace, [])

    def test_validate_pipeline_config(self):
        cfg = pipeline_config()
        self.assertEqual(validate_pipeline_config(cfg), [])
        cfg = copy.deepcopy(cfg)
        cfg["artifact_store"][0]["region"] = "us-east-1"
        self.assertEqual(len(validate_pipeline_config(cfg)), 1)
        cfg["stage"] = UNKNOWN
        self.assertEqual(validate_pipeline_config(cfg), [])


if __name__ == "__main__":
    unittest.main()
