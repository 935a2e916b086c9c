from .gcode_reader import Axis, GCodeLine, GCodeReader
from .geometry import Point, NearestPointFinder, SegmentProjectionFinder, make_finder
from .spiral_vase import SpiralVase, LayerMeasurement
from .gcode_parser import GCodeParser, ParsedGCode, LayerInfo, PrinterState, SlicerMetadata
from .layer_mapper import LayerMapper, LayerMatch
from .validator import Validator, ValidationResult, ValidationIssue
from .profiles import ProfileLoader, SpiralProfile

__all__ = [
    "Axis",
    "GCodeLine",
    "GCodeReader",
    "Point",
    "NearestPointFinder",
    "SegmentProjectionFinder",
    "make_finder",
    "SpiralVase",
    "LayerMeasurement",
    "GCodeParser",
    "ParsedGCode",
    "LayerInfo",
    "PrinterState",
    "SlicerMetadata",
    "LayerMapper",
    "LayerMatch",
    "Validator",
    "ValidationResult",
    "ValidationIssue",
    "ProfileLoader",
    "SpiralProfile",
]
