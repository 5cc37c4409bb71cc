"""HTTP surface consumed by the journal presentation layer."""
