"""permsnap: permission snapshot computation engine."""
