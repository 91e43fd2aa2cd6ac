"""Tests for the skeleton generator adapter."""

from pathlib import Path

import pytest

from service_provisioner.errors import SkeletonError
from service_provisioner.models.schemas import DeployDecision, ServiceDefinition
from service_provisioner.services.repository import RepositoryProvisioner
from service_provisioner.services.skeleton import DEPLOY_MARKER, SkeletonGenerator, deploy_decision_for


def _service(**overrides):
    fields = {"name": "orders-api", "type": "service", "project": "proj", "provider": "github"}
    fields.update(overrides)
    return ServiceDefinition(**fields)


class TestBuildCommand:
    def test_github_passes_codeowners_and_consensus(self):
        """Test that GitHub skeletons receive the CODEOWNERS inputs."""
        generator = SkeletonGenerator("scaffold_app.sh", codeowners="@acme/proj-leads", consensus="2")
        cmd = generator.build_command(_service(), Path("/tmp/app"))

        assert cmd[:3] == ["scaffold_app.sh", "--provider", "github"]
        assert cmd[cmd.index("--codeowners") + 1] == "@acme/proj-leads"
        assert cmd[cmd.index("--consensus") + 1] == "2"
        assert cmd[cmd.index("--outputDir") + 1] == "/tmp/app"

    def test_azdo_has_no_codeowners(self):
        generator = SkeletonGenerator("scaffold_app.sh", codeowners="@acme/proj-leads", consensus="2")
        cmd = generator.build_command(_service(provider="azdo"), Path("/tmp/app"))

        assert "--codeowners" not in cmd
        assert "--consensus" not in cmd

    def test_optional_flags(self):
        cmd = SkeletonGenerator("scaffold_app.sh").build_command(
            _service(lib=True, test_service=True, source_branch="main"), Path("/tmp/app")
        )
        assert cmd[-2:] == ["--lib", "--testService"]
        assert cmd[cmd.index("--srcbranch") + 1] == "main"
        assert cmd[cmd.index("--codeowners") + 1] == ""

    def test_generator_built_from_project_definition(self, make_context, definition):
        """Test that the repository provisioner hands the definition's inputs to the scaffold."""
        context = make_context(
            definition=definition.model_copy(update={"codeowners": "@acme/proj-leads", "consensus": "1"})
        )
        generator = RepositoryProvisioner(context).generator

        assert generator.codeowners == "@acme/proj-leads"
        assert generator.consensus == "1"


class TestGenerate:
    def test_missing_command(self, tmp_path):
        with pytest.raises(SkeletonError, match="not found"):
            SkeletonGenerator(str(tmp_path / "missing.sh")).generate(_service(), tmp_path / "app")

    def test_deploy_decision(self, tmp_path):
        assert deploy_decision_for(tmp_path) == DeployDecision.NO
        (tmp_path / DEPLOY_MARKER).write_text("trigger: none")
        assert deploy_decision_for(tmp_path) == DeployDecision.YES
