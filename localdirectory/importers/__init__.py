"""Review and business importers."""

from localdirectory.importers.businesses import BusinessImporter, slugify
from localdirectory.importers.csv_reader import CsvReadResult, read_reviews_csv
from localdirectory.importers.diagnostic import run_diagnostic
from localdirectory.importers.reviews import ReviewImporter, build_review_row, clamp_rating
