from .paths import is_path_within_root

__all__ = ["is_path_within_root"]
