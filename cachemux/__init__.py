from cachemux.converter import convert
from cachemux.errors import ConversionError
from cachemux.models import ConversionResult

__all__ = ["convert", "ConversionError", "ConversionResult"]
