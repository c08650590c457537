"""crossdeploy: compiles cross-account CI/CD pipeline definitions into CloudFormation."""

__version__ = "0.4.0"
