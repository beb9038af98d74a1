"""StreamVerse pay-per-chunk player."""
