"""Source checkout, artifact staging and binary installation."""
