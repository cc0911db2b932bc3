"""External capability clients: the trend probe and the candidate classifier."""
