"""chains - Ledger, simulated venues and RPC access."""
