"""Built-in CLI sub-commands: ``config``, ``profile``, ``query``, and ``get``."""
