"""
Record streams
==============

Input records fed to models, one dictionary per record, with the minimum and
maximum of the numeric fields known upfront.

"""
import logging
import numbers

import numpy
import pandas

log = logging.getLogger(__name__)


def _to_python(value):
    if isinstance(value, numpy.generic):
        return value.item()

    return value


class RecordStream:
    """Interface of record streams"""

    def get_next_record(self):
        """Return the next record as a dict, or None at end of stream"""
        raise NotImplementedError()

    def get_field_names(self):
        """Return the names of the fields of the records"""
        raise NotImplementedError()

    def get_field_min(self, name):
        """Return the minimum of a numeric field, None for other fields"""
        raise NotImplementedError()

    def get_field_max(self, name):
        """Return the maximum of a numeric field, None for other fields"""
        raise NotImplementedError()

    def get_field_stats(self):
        """Return ``{field: {'min': ..., 'max': ...}}`` for every field"""
        return {
            name: {"min": self.get_field_min(name), "max": self.get_field_max(name)}
            for name in self.get_field_names()
        }

    def close(self):
        """Release the resources of the stream"""


class ListRecordStream(RecordStream):
    """Stream over records held in memory

    Parameters
    ----------
    records: list of dict
        Records to return in order.
    field_names: list of str, optional
        Names of the fields. Default is the keys of the first record.

    """

    def __init__(self, records, field_names=None):
        self._records = list(records)
        self._position = 0
        if field_names is None:
            field_names = list(self._records[0].keys()) if self._records else []
        self._field_names = list(field_names)

    def get_next_record(self):
        if self._position >= len(self._records):
            return None

        record = self._records[self._position]
        self._position += 1
        return record

    def get_field_names(self):
        return list(self._field_names)

    def _numeric_values(self, name):
        return [
            record[name]
            for record in self._records
            if isinstance(record.get(name), numbers.Number)
        ]

    def get_field_min(self, name):
        values = self._numeric_values(name)
        return float(numpy.min(values)) if values else None

    def get_field_max(self, name):
        values = self._numeric_values(name)
        return float(numpy.max(values)) if values else None


class CSVRecordStream(RecordStream):
    """Stream over the rows of a CSV file with a header line

    Parameters
    ----------
    path: str
        Path of the CSV file.
    fields: list of str, optional
        Columns to read. Default is all of them.

    """

    def __init__(self, path, fields=None):
        self.path = path
        self._frame = pandas.read_csv(path, usecols=fields)
        self._records = self._frame.to_dict("records")
        self._position = 0
        log.debug("Loaded %d records from %s", len(self._records), path)

    def get_next_record(self):
        if self._position >= len(self._records):
            return None

        record = self._records[self._position]
        self._position += 1
        return {name: _to_python(value) for name, value in record.items()}

    def get_field_names(self):
        return [str(name) for name in self._frame.columns]

    def _numeric_column(self, name):
        column = self._frame[name]
        if not pandas.api.types.is_numeric_dtype(column) or column.isna().all():
            return None

        return column

    def get_field_min(self, name):
        column = self._numeric_column(name)
        return None if column is None else float(column.min())

    def get_field_max(self, name):
        column = self._numeric_column(name)
        return None if column is None else float(column.max())

    def close(self):
        self._records = []
