"""External data sources: Solana JSON-RPC and the program log stream."""
