"""jitkit — build native-style functions from structured Python descriptions."""

from .context import Context  # noqa: F401
from .engine_types import EngineConfig, ExecutionStats  # noqa: F401
from .errors import (  # noqa: F401
    ConstructionError,
    DuplicateMemberError,
    EngineError,
    JitError,
    JitTypeError,
    LabelPlacementError,
    ScopeViolationError,
    UnknownMemberError,
    UnplacedLabelError,
)
from .function import Function  # noqa: F401
from .jit_types import (  # noqa: F401
    ABI,
    FLOAT32,
    FLOAT64,
    INT,
    LONG,
    NFLOAT,
    NINT,
    NUINT,
    OBJECT,
    SBYTE,
    SHORT,
    UBYTE,
    UINT,
    ULONG,
    USHORT,
    VOID,
    VOID_PTR,
    JitType,
    PointerType,
    SignatureType,
    StructType,
    TypeKind,
    create_signature,
    lookup_type,
)
from .label import Label  # noqa: F401
from .layout import Array, Pointer, Struct  # noqa: F401
from .value import Value, ValueKind  # noqa: F401
