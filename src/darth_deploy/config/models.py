"""Strongly-typed configuration models for darth-deploy projects."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

TAG_PROJECT = "darth-project"
TAG_ENVIRONMENT = "darth-environment"
TAG_STACK = "darth-stack"


class StackKind(str, Enum):
    """What a stack deploys. Shared stacks exist once per account and region."""

    SERVICE = "service"
    JOB = "job"
    SHARED = "shared"


@dataclass
class StackConfig:
    """A single CloudFormation stack managed by the project.

    Attributes:
        name: Logical stack name (e.g. "api", "nightly-report").
        kind: "service", "job" or "shared".
        template: Template id. Looked up in the project's ``templates/``
            directory first, then among the built-in templates. Defaults to
            the kind's built-in template.
        description: Stack description passed to CloudFormation.
        parameters: CloudFormation parameter values.
        addons_template_url: S3 URL of a nested "addons" template to attach
            as the ``AddonsStack`` resource.
        depends_on: Stacks that must be deployed before this one.
    """

    name: str
    kind: StackKind = StackKind.SERVICE
    template: str | None = None
    description: str | None = None
    parameters: dict[str, str] = field(default_factory=dict)
    addons_template_url: str | None = None
    depends_on: list[str] = field(default_factory=list)

    @property
    def template_id(self) -> str:
        return self.template or self.kind.value


@dataclass
class DeploySettings:
    """Timing knobs for the deploy loop.

    Attributes:
        poll_interval_seconds: Delay between stack event polls.
        stack_poll_interval_seconds: Delay between stack status polls.
        change_set_wait_delay_seconds: Delay between change set status checks.
        change_set_wait_max_attempts: Checks before giving up on a change set.
        change_set_prefix: Prefix of generated change set names.
    """

    poll_interval_seconds: float = 3.0
    stack_poll_interval_seconds: float = 3.0
    change_set_wait_delay_seconds: int = 5
    change_set_wait_max_attempts: int = 120
    change_set_prefix: str = "darth"

    def __post_init__(self) -> None:
        if self.poll_interval_seconds <= 0 or self.stack_poll_interval_seconds <= 0:
            raise ValueError("Poll intervals must be positive")
        if self.change_set_wait_max_attempts < 1:
            raise ValueError("change_set_wait_max_attempts must be at least 1")
        prefix = self.change_set_prefix
        if not prefix or not prefix[0].isalpha() or not all(
            c.isalnum() or c == "-" for c in prefix
        ):
            raise ValueError(
                f"change_set_prefix '{prefix}' must start with a letter and "
                "contain only letters, digits and hyphens"
            )


@dataclass
class EnvironmentOverride:
    """Per-environment overrides.

    Any field left empty inherits from the stack defaults.
    """

    parameters: dict[str, dict[str, str]] = field(default_factory=dict)
    """Map of stack name -> parameter overrides for this environment."""

    aws_region: str | None = None
    """Deploy this environment to a different region."""

    tags: dict[str, str] = field(default_factory=dict)


@dataclass
class ProjectConfig:
    """Top-level project configuration. Read from ``darth-deploy.toml``.

    Attributes:
        project_name: Short kebab-case project name (e.g. "my-webapp").
        stacks: Stacks to deploy, in deployment order.
        environments: Environment names. "prod" must be first.
        aws_region: Default AWS region.
        deploy: Polling and change set settings.
        environment_overrides: Per-environment configuration overrides.
        tags: Additional tags applied to every stack.
    """

    project_name: str
    stacks: list[StackConfig]
    environments: list[str] = field(default_factory=lambda: ["prod"])
    aws_region: str = "us-east-1"
    deploy: DeploySettings = field(default_factory=DeploySettings)
    environment_overrides: dict[str, EnvironmentOverride] = field(default_factory=dict)
    tags: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if "prod" not in self.environments:
            raise ValueError("'prod' must be in the environments list")
        if self.environments[0] != "prod":
            self.environments.remove("prod")
            self.environments.insert(0, "prod")

        stack_names = [s.name for s in self.stacks]
        if len(stack_names) != len(set(stack_names)):
            raise ValueError("Stack names must be unique")

        for stack in self.stacks:
            for dep in stack.depends_on:
                if dep not in stack_names:
                    raise ValueError(
                        f"Stack '{stack.name}' depends on unknown stack '{dep}'"
                    )
                if stack_names.index(dep) > stack_names.index(stack.name):
                    raise ValueError(
                        f"Stack '{stack.name}' depends on '{dep}', "
                        f"which must be listed before it"
                    )

        for env_name, override in self.environment_overrides.items():
            if env_name not in self.environments:
                raise ValueError(
                    f"Overrides given for unknown environment '{env_name}'"
                )
            for stack_name in override.parameters:
                if stack_name not in stack_names:
                    raise ValueError(
                        f"Environment '{env_name}' overrides parameters of "
                        f"unknown stack '{stack_name}'"
                    )

    def get_stack(self, name: str) -> StackConfig:
        stack = next((s for s in self.stacks if s.name == name), None)
        if stack is None:
            raise ValueError(
                f"Stack '{name}' not found. "
                f"Available: {', '.join(s.name for s in self.stacks)}"
            )
        return stack

    def get_stack_name(self, stack: StackConfig, env: str) -> str:
        """CloudFormation stack name for *stack* in *env*."""
        if stack.kind == StackKind.SHARED:
            return f"{self.project_name}-{stack.name}"
        return f"{self.project_name}-{env}-{stack.name}"

    def get_region(self, env: str) -> str:
        overrides = self.environment_overrides.get(env)
        if overrides and overrides.aws_region:
            return overrides.aws_region
        return self.aws_region

    def get_parameters(self, stack: StackConfig, env: str) -> dict[str, str]:
        params = dict(stack.parameters)
        overrides = self.environment_overrides.get(env)
        if overrides:
            params.update(overrides.parameters.get(stack.name, {}))
        return params

    def get_tags(self, stack: StackConfig, env: str) -> dict[str, str]:
        tags = dict(self.tags)
        overrides = self.environment_overrides.get(env)
        if overrides:
            tags.update(overrides.tags)
        tags[TAG_PROJECT] = self.project_name
        if stack.kind != StackKind.SHARED:
            tags[TAG_ENVIRONMENT] = env
        tags[TAG_STACK] = stack.name
        return tags
