"""
Failures reported by the workbook document model.
"""


class DocumentError(Exception):
    """The document rejected an operation."""


class SheetNotFoundError(DocumentError):
    def __init__(self, name: str):
        super().__init__(f"Worksheet not found: {name!r}")
        self.name = name


class DuplicateSheetError(DocumentError):
    def __init__(self, name: str):
        super().__init__(
            f"A resource with the same name already exists: {name!r}"
        )
        self.name = name


class RangeSizeMismatchError(DocumentError):
    def __init__(self, address: str, expected: tuple, actual: tuple):
        super().__init__(
            "The number of rows or columns in the input array doesn't match "
            f"the size or dimensions of the range. Range {address} is "
            f"{expected[0]}x{expected[1]}, payload is {actual[0]}x{actual[1]}."
        )
        self.address = address
        self.expected = expected
        self.actual = actual


class CalculationTimeoutError(DocumentError):
    def __init__(self, seconds: float):
        super().__init__(f"Formula evaluation timed out after {seconds:g}s")
        self.seconds = seconds
