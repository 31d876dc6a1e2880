from .bean import (
    CLOSED_STATUSES,
    DEFAULT_SORT_MODE,
    DELETABLE_STATUSES,
    MAX_DESCRIPTION_LENGTH,
    MAX_ID_LENGTH,
    MAX_METADATA_LENGTH,
    MAX_PATH_LENGTH,
    MAX_TITLE_LENGTH,
    SORT_MODES,
    BeanRecord,
    SortMode,
)

__all__ = [
    "BeanRecord",
    "SortMode",
    "SORT_MODES",
    "DEFAULT_SORT_MODE",
    "CLOSED_STATUSES",
    "DELETABLE_STATUSES",
    "MAX_ID_LENGTH",
    "MAX_TITLE_LENGTH",
    "MAX_METADATA_LENGTH",
    "MAX_DESCRIPTION_LENGTH",
    "MAX_PATH_LENGTH",
]
