"""roku-pkg: build, deploy, and sign Roku channel packages."""

__version__ = "0.1.0"
