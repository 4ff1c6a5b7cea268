# This is the canonical package information.
__author__ = "Andrew Dunham"
__license__ = "Apache"
__copyright__ = "Copyright (c) 2012-2013, Andrew Dunham"

# We get the version from a sub-file that can be automatically generated.
from ._version import __version__
from .entries import Entries, PartialEntries, PartialSavedField, SaveDir, SavedData, SavedField
from .fields import FieldHeaders, FieldList, MultipartField
from .result import Error, Full, Partial, PartialReason, ReasonKind, SaveResult
from .save import FieldSaveBuilder, RequestSaveBuilder, SaveBuilder, TextPolicy, save_form
from .streams import BufferedBody

__all__ = (
    "__version__",
    "BufferedBody",
    "Entries",
    "Error",
    "FieldHeaders",
    "FieldList",
    "FieldSaveBuilder",
    "Full",
    "MultipartField",
    "Partial",
    "PartialEntries",
    "PartialReason",
    "PartialSavedField",
    "ReasonKind",
    "RequestSaveBuilder",
    "SaveBuilder",
    "SaveDir",
    "SaveResult",
    "SavedData",
    "SavedField",
    "TextPolicy",
    "save_form",
)
