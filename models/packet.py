"""
Packet model.

A synthetic ICMP packet with the L2 and L3 header fields shown in the
packet inspector. The orchestrator mutates one instance hop by hop and
publishes snapshots of it in events.
"""

import copy
from dataclasses import dataclass, field
from typing import Optional

BROADCAST_MAC = "FF:FF:FF:FF:FF:FF"
ETHERTYPE_IPV4 = "0x0800"
ETHERTYPE_ARP = "0x0806"
DEFAULT_TTL = 64
MAX_TTL = 255


@dataclass
class L2Header:
    """Ethernet frame fields."""
    src_mac: str = ""
    dst_mac: str = ""
    ether_type: str = ETHERTYPE_IPV4


@dataclass
class L3Header:
    """IPv4 packet fields."""
    src_ip: str = ""
    dst_ip: str = ""
    ttl: int = DEFAULT_TTL
    protocol: str = "ICMP"


@dataclass
class Packet:
    """
    A packet in flight.

    Attributes:
        id: Correlates every event emitted for this packet
        l2: Frame header, rewritten on each hop
        l3: IP header, TTL decremented on each hop
        icmp_type: "echo-request" or "echo-reply"
        hop_count: Edges traversed so far
        current_device: Device currently holding the packet
    """
    id: str
    l2: L2Header = field(default_factory=L2Header)
    l3: L3Header = field(default_factory=L3Header)
    icmp_type: str = "echo-request"
    sequence: int = 1
    hop_count: int = 0
    current_device: str = ""
    path: list[str] = field(default_factory=list)

    @property
    def ttl(self) -> int:
        return self.l3.ttl

    @property
    def expired(self) -> bool:
        return self.l3.ttl <= 0

    def rewrite_l2(self, src_mac: str, dst_mac: str):
        """Re-frame the packet for the link it is about to cross."""
        self.l2.src_mac = src_mac
        self.l2.dst_mac = dst_mac

    def decrement_ttl(self) -> int:
        self.l3.ttl = max(0, self.l3.ttl - 1)
        return self.l3.ttl

    def snapshot(self) -> "Packet":
        """Independent copy for event payloads."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "l2": {
                "src_mac": self.l2.src_mac,
                "dst_mac": self.l2.dst_mac,
                "ether_type": self.l2.ether_type,
            },
            "l3": {
                "src_ip": self.l3.src_ip,
                "dst_ip": self.l3.dst_ip,
                "ttl": self.l3.ttl,
                "protocol": self.l3.protocol,
            },
            "icmp_type": self.icmp_type,
            "sequence": self.sequence,
            "hop_count": self.hop_count,
            "current_device": self.current_device,
            "path": list(self.path),
        }


class PacketFactory:
    """Creates packets with ids unique to this factory."""

    def __init__(self, prefix: str = "pkt"):
        self._prefix = prefix
        self._counter = 0

    def next_id(self) -> str:
        self._counter += 1
        return f"{self._prefix}-{self._counter:04d}"

    def create_echo_request(
        self,
        src_ip: str,
        dst_ip: str,
        src_mac: str = "",
        dst_mac: Optional[str] = None,
        ttl: int = DEFAULT_TTL,
        origin: str = "",
    ) -> Packet:
        """
        Build an ICMP echo request.

        The destination MAC starts as broadcast until the sender has
        resolved the next hop. TTL is clamped to 1..MAX_TTL.
        """
        ttl = max(1, min(int(ttl), MAX_TTL))
        return Packet(
            id=self.next_id(),
            l2=L2Header(src_mac=src_mac, dst_mac=dst_mac or BROADCAST_MAC),
            l3=L3Header(src_ip=src_ip, dst_ip=dst_ip, ttl=ttl),
            current_device=origin,
            path=[origin] if origin else [],
        )

    def reset(self):
        self._counter = 0
