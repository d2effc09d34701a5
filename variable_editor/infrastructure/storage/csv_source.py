# variable_editor/infrastructure/storage/csv_source.py
import csv
import io
from typing import Dict, Iterator


class CsvRowSource:
    """Rows of a delimited-text payload; every iteration starts over from the first row."""

    def __init__(self, text: str, delimiter: str = ","):
        # tolerate a UTF-8 BOM from spreadsheet exports
        self.text = text.lstrip("\ufeff")
        self.delimiter = delimiter

    @classmethod
    def from_bytes(cls, data: bytes, delimiter: str = ",", encoding: str = "utf-8") -> "CsvRowSource":
        return cls(data.decode(encoding), delimiter=delimiter)

    def __iter__(self) -> Iterator[Dict[str, str]]:
        reader = csv.DictReader(io.StringIO(self.text, newline=""), delimiter=self.delimiter)
        if reader.fieldnames:
            reader.fieldnames = [name.strip() for name in reader.fieldnames]
        for row in reader:
            # short rows leave missing columns as None, extra cells go under the None key
            yield {key: value for key, value in row.items() if key is not None and value is not None}
