"""Record codec package."""

from ledgervault.codec.record_codec import RecordCodec

__all__ = ["RecordCodec"]
