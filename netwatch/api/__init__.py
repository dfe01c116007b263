"""HTTP front door for the interception pipeline."""
