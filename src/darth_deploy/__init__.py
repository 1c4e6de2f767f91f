"""Deploy CloudFormation stacks through change sets with live nested progress."""

__version__ = "0.1.0"
