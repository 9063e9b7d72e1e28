"""Capture decoding, feature extraction and labeling."""
