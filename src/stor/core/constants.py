"""Core constants for stor.

This module defines constants used throughout the application:
- Ledger file naming and line format
- Environment variables read at runtime
"""

# ============================================================================
# Ledger Format
# ============================================================================

#: Name of the ledger file that marks a directory as a stor repository
LEDGER_FILENAME: str = ".stor"

#: Token separating the quoted symlink and target fields on a ledger line
SEPARATOR: str = "=>"

#: Prefix marking a ledger line as an opaque comment
COMMENT_PREFIX: str = "#"

# ============================================================================
# Environment
# ============================================================================

#: Enables debug logging when set to 1/true/yes
ENV_DEBUG: str = "STOR_DEBUG"

#: Overrides the directory repository discovery starts from
ENV_DIR: str = "STOR_DIR"

#: Values of boolean environment variables treated as enabled
TRUTHY_VALUES: tuple[str, ...] = ("1", "true", "yes")
