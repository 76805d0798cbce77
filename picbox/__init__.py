"""Mirror liked photos from a source photo service into Dropbox."""

__version__ = "0.1.0"
