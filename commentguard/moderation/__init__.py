"""Comment moderation: rule detectors, trust, classifier adapter and decisions."""
