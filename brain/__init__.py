"""Engine access: identity, admission, and streaming."""
