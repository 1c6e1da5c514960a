"""Agent wallet for Paperwall.

Private keys are stored AES-256-GCM encrypted under one of three modes:
machine-bound (hostname and uid), password, or an injected environment key.
Wallet files without a recorded mode are treated as machine-bound.
"""
