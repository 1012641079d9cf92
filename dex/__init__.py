"""dex - Venue encoders and their registry."""
