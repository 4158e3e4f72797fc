from graph_er.datasets.reference import CSV_COLUMNS, ReferenceDatasetGenerator, write_csv

__all__ = ["CSV_COLUMNS", "ReferenceDatasetGenerator", "write_csv"]
