"""Branch deploy: build, publish, provision and verify one app per branch."""

__version__ = "1.0.0"
