# backend/topics.py
"""
Topic catalog and topic selection.
The catalog is fixed for the life of the process.
"""

import random
from typing import Iterable, Optional

BITCOIN_TOPICS = (
    "The Genesis Block",
    "Satoshi Nakamoto's Whitepaper",
    "Proof of Work",
    "Difficulty Adjustment",
    "The Halving",
    "The 21 Million Supply Cap",
    "UTXO model",
    "Elliptic Curve Cryptography (secp256k1)",
    "SHA-256 Hashing",
    "Merkle Trees",
    "The Mempool and Fee Markets",
    "Mining Pools",
    "The Lightning Network",
    "Segregated Witness (SegWit)",
    "Taproot and Schnorr Signatures",
    "Full Nodes and Validation",
    "The Byzantine Generals Problem",
    "51% Attacks",
    "Double Spending",
    "Hardware Wallets and Cold Storage",
    "Seed Phrases (BIP39)",
    "Hierarchical Deterministic Wallets",
    "Multisignature Custody",
    "Bitcoin Script",
    "Timelocks",
    "The Blocksize War",
    "Soft Forks and Hard Forks",
    "Chain Reorganizations",
    "The Cypherpunk Movement",
    "Hal Finney and the First Transaction",
    "The Pizza Transaction",
    "Mt. Gox",
    "Energy Use and Mining Economics",
    "Sound Money and Austrian Economics",
    "Censorship Resistance",
    "Privacy and CoinJoin",
    "Peer-to-Peer Network Gossip",
    "Block Propagation",
    "Nonce Rolling and Block Headers",
    "Orphaned and Stale Blocks",
    "Self-Custody",
    "Bitcoin Improvement Proposals",
    "Dust and Transaction Fees",
    "Replace-By-Fee",
    "Sidechains",
    "The Timechain",
)


def pick_topic(exclude: Iterable[str] = (), rng: Optional[random.Random] = None) -> str:
    """
    Pick a catalog topic that is not in `exclude` (case-insensitive).
    Falls back to the whole catalog when every topic is excluded.
    """
    exclude_set = {topic.lower() for topic in exclude}
    available = [topic for topic in BITCOIN_TOPICS if topic.lower() not in exclude_set]
    pool = available if available else list(BITCOIN_TOPICS)
    chooser = rng if rng is not None else random
    return chooser.choice(pool)
