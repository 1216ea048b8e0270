"""
Corpus Reader

Turns dataset files into the token sequences the transition table is trained
on. Each line of a text file, or each row of the text column of a CSV file,
is one unit of text and becomes one sequence; sequences are never joined, so
no transition is recorded across a line break.

Supported formats:
    - .csv: read with pandas, one configurable column
    - anything else: plain text, one unit per line

Tokenization is a plain whitespace split, optionally lowercased.
"""

import logging
import os

import pandas as pd


class CorpusReader:
    def __init__(self, lowercase=False, csv_text_column=0, csv_header=None,
                 encoding="utf-8", logger=None):
        """
        Args:
            lowercase (bool): Lowercase every token
            csv_text_column (int or str): Position or name of the CSV column
                holding the text
            csv_header (int or None): Row number of the CSV header, or None if
                the files have no header row
            encoding (str): Encoding tried first; latin-1 is the fallback
            logger (logging.Logger, optional): Logger for reading activity
        """
        self.lowercase = lowercase
        self.csv_text_column = csv_text_column
        self.csv_header = csv_header
        self.encoding = encoding
        self.logger = logger or logging.getLogger(__name__)

    def tokenize(self, text):
        """Split text on whitespace."""
        if self.lowercase:
            text = text.lower()
        return text.split()

    def _read_csv(self, file_path):
        try:
            try:
                df = pd.read_csv(file_path, encoding=self.encoding, header=self.csv_header)
            except UnicodeDecodeError:
                self.logger.warning(f"Falling back to latin-1 for {file_path}")
                df = pd.read_csv(file_path, encoding="latin-1", header=self.csv_header)
        except pd.errors.EmptyDataError:
            return []

        if isinstance(self.csv_text_column, int):
            if self.csv_text_column >= len(df.columns):
                raise ValueError(
                    f"{file_path} has {len(df.columns)} columns, "
                    f"column {self.csv_text_column} requested")
            column = df.iloc[:, self.csv_text_column]
        else:
            if self.csv_text_column not in df.columns:
                raise ValueError(f"{file_path} has no column {self.csv_text_column!r}")
            column = df[self.csv_text_column]

        return column.dropna().astype(str).tolist()

    def _read_text(self, file_path):
        try:
            with open(file_path, "r", encoding=self.encoding) as f:
                return f.read().splitlines()
        except UnicodeDecodeError:
            self.logger.warning(f"Falling back to latin-1 for {file_path}")
            with open(file_path, "r", encoding="latin-1") as f:
                return f.read().splitlines()

    def read_lines(self, file_path):
        """
        Read the units of text of one dataset.

        Args:
            file_path (str): Path of a .csv or text file

        Returns:
            list of str: One entry per line (text) or per non-empty cell (CSV)

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the configured CSV column does not exist
        """
        if not os.path.exists(file_path):
            raise FileNotFoundError(f"Dataset file not found: {file_path}")

        file_ext = os.path.splitext(file_path)[1].lower()
        if file_ext == ".csv":
            lines = self._read_csv(file_path)
        else:
            lines = self._read_text(file_path)

        self.logger.info(f"Dataset loaded: {file_path}", extra={
            "metrics": {
                "file_path": file_path,
                "format": "csv" if file_ext == ".csv" else "text",
                "line_count": len(lines)
            }
        })
        return lines

    def iter_sequences(self, file_paths):
        """
        Yield the token sequence of every non-empty line of every dataset.

        Args:
            file_paths (list of str): Datasets, read in order

        Yields:
            list of str: Tokens of one line
        """
        for file_path in file_paths:
            for line in self.read_lines(file_path):
                tokens = self.tokenize(line)
                if tokens:
                    yield tokens
