"""Infrastructure layer: cache and record store backends, collaborators, logging."""
