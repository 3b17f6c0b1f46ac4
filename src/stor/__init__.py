"""stor: move dot files into a repository and symlink them back."""

__version__ = "0.1.0"
