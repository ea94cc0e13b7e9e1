from ._version import __version__
from .context import SkmContext
from .errors import (
    GitError,
    LinkError,
    ManifestMissingError,
    SkillExistsError,
    SkillNotFoundError,
    SkmError,
)
from .identity import SkillId, decode_safe_name, encode_safe_name, parse_skill_id
from .links import LinkReconciler
from .registry import SkillRecord, SkillRegistry
from .repository import SkillRepository
from .versions import VersionResolver

__all__ = [
    "__version__",
    "GitError",
    "LinkError",
    "LinkReconciler",
    "ManifestMissingError",
    "SkillExistsError",
    "SkillId",
    "SkillNotFoundError",
    "SkillRecord",
    "SkillRegistry",
    "SkillRepository",
    "SkmContext",
    "SkmError",
    "VersionResolver",
    "decode_safe_name",
    "encode_safe_name",
    "parse_skill_id",
]
