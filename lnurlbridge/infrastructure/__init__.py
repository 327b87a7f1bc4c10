"""Infrastructure: challenge token store and node RPC adapter."""
