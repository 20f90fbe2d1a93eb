"""Built-in export steps."""

from .builtin import DEFAULT_STEPS, register_builtin_steps

__all__ = ["DEFAULT_STEPS", "register_builtin_steps"]
