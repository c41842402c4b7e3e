"""Flask service exposing the unlisted sales dataset."""
