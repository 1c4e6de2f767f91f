import pytest

from darth_deploy.config.loader import find_config, load_config, parse_project
from darth_deploy.config.models import (
    DeploySettings,
    ProjectConfig,
    StackConfig,
    StackKind,
)

CONFIG = """\
[project]
name = "demo"
aws_region = "eu-west-1"
environments = ["dev", "prod"]
tags = { team = "web" }

[deploy]
poll_interval_seconds = 1
change_set_prefix = "demo"

[[stacks]]
name = "shared"
kind = "shared"

[[stacks]]
name = "api"
template = "api-service"
parameters = { ContainerPort = 8000, DesiredCount = "2" }
addons_template_url = "https://bucket.s3.amazonaws.com/addons.yml"
depends_on = ["shared"]

[environments.dev]
aws_region = "us-east-2"
tags = { cost-center = "sandbox" }

[environments.dev.parameters.api]
DesiredCount = "1"
"""


@pytest.fixture
def config(tmp_path):
    path = tmp_path / "darth-deploy.toml"
    path.write_text(CONFIG)
    return load_config(path)


class TestLoadConfig:
    def test_project(self, config):
        assert config.project_name == "demo"
        assert config.environments == ["prod", "dev"]
        assert config.deploy.poll_interval_seconds == 1.0
        assert config.deploy.change_set_prefix == "demo"
        assert [s.name for s in config.stacks] == ["shared", "api"]

    def test_stack(self, config):
        api = config.get_stack("api")

        assert api.kind is StackKind.SERVICE
        assert api.template_id == "api-service"
        assert api.parameters == {"ContainerPort": "8000", "DesiredCount": "2"}
        assert config.get_stack("shared").template_id == "shared"

    def test_environment_overrides(self, config):
        api = config.get_stack("api")

        assert config.get_parameters(api, "dev")["DesiredCount"] == "1"
        assert config.get_parameters(api, "prod")["DesiredCount"] == "2"
        assert config.get_region("dev") == "us-east-2"
        assert config.get_region("prod") == "eu-west-1"

    def test_find_config_walks_up(self, tmp_path):
        (tmp_path / "darth-deploy.toml").write_text(CONFIG)
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)

        assert find_config(nested) == (tmp_path / "darth-deploy.toml").resolve()

    def test_find_config_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            find_config(tmp_path)


class TestProjectConfig:
    def test_stack_names(self, config):
        assert config.get_stack_name(config.get_stack("api"), "dev") == "demo-dev-api"
        assert config.get_stack_name(config.get_stack("shared"), "dev") == "demo-shared"

    def test_tags(self, config):
        tags = config.get_tags(config.get_stack("api"), "dev")

        assert tags == {
            "team": "web",
            "cost-center": "sandbox",
            "darth-project": "demo",
            "darth-environment": "dev",
            "darth-stack": "api",
        }

    def test_shared_stacks_have_no_environment_tag(self, config):
        assert "darth-environment" not in config.get_tags(
            config.get_stack("shared"), "dev"
        )

    def test_unknown_stack(self, config):
        with pytest.raises(ValueError, match="Available: shared, api"):
            config.get_stack("worker")

    def test_prod_required(self):
        with pytest.raises(ValueError, match="prod"):
            ProjectConfig(project_name="demo", stacks=[], environments=["dev"])

    def test_duplicate_stacks(self):
        with pytest.raises(ValueError, match="unique"):
            ProjectConfig(
                project_name="demo",
                stacks=[StackConfig(name="api"), StackConfig(name="api")],
            )

    def test_dependencies_must_come_first(self):
        with pytest.raises(ValueError, match="must be listed before"):
            ProjectConfig(
                project_name="demo",
                stacks=[
                    StackConfig(name="api", depends_on=["shared"]),
                    StackConfig(name="shared", kind=StackKind.SHARED),
                ],
            )

    def test_overrides_for_unknown_environment(self):
        with pytest.raises(ValueError, match="unknown environment"):
            parse_project(
                {
                    "project": {"name": "demo"},
                    "environments": {"dev": {"aws_region": "us-east-2"}},
                }
            )

    def test_missing_project_name(self):
        with pytest.raises(ValueError, match="name is required"):
            parse_project({"project": {}})


@pytest.mark.parametrize("prefix", ["", "1darth", "darth_deploy"])
def test_invalid_change_set_prefix(prefix):
    with pytest.raises(ValueError, match="change_set_prefix"):
        DeploySettings(change_set_prefix=prefix)


def test_poll_intervals_must_be_positive():
    with pytest.raises(ValueError, match="positive"):
        DeploySettings(poll_interval_seconds=0)
