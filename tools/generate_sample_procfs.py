#!/usr/bin/env python3
"""
Generate a fake procfs tree for running HostScope without a Linux /proc

    python tools/generate_sample_procfs.py /tmp/fakeproc
    python -m hostscope --procfs /tmp/fakeproc
"""

import os
import random
import argparse

TCP_HEADER = ("  sl  local_address rem_address   st tx_queue rx_queue tr tm->when "
              "retrnsmt   uid  timeout inode\n")
UNIX_HEADER = "Num       RefCount Protocol Flags    Type St Inode Path\n"
NETLINK_HEADER = ("sk               Eth Pid        Groups   Rmem     Wmem     Dump     "
                  "Locks     Drops     Inode\n")


def _hex_ipv4(ip):
    return ''.join(f"{int(octet):02X}" for octet in reversed(ip.split('.')))


def _ip_line(slot, local, remote, state, uid, inode):
    return (f"{slot:4d}: {local} {remote} {state:02X} 00000000:00000000 00:00000000 "
            f"00000000 {uid:5d}        0 {inode} 1 0000000000000000 100 0 0 10 0\n")


def generate_sample_procfs(root, count=20, seed=None):
    """Write net/{tcp,tcp6,udp,udp6,unix,netlink} under root"""
    rng = random.Random(seed)
    net = os.path.join(root, "net")
    os.makedirs(net, exist_ok=True)

    inode = 10000
    ips = ["127.0.0.1", "192.168.1.10", "10.0.0.25", "172.16.0.5", "8.8.8.8"]

    def next_inode():
        nonlocal inode
        inode += rng.randint(1, 50)
        return inode

    with open(os.path.join(net, "tcp"), "w") as f:
        f.write(TCP_HEADER)
        for slot in range(count):
            local = f"{_hex_ipv4(rng.choice(ips))}:{rng.choice([22, 80, 443, 5037]):04X}"
            if slot % 3 == 0:
                remote, state = "00000000:0000", 0x0A
            else:
                remote = f"{_hex_ipv4(rng.choice(ips))}:{rng.randint(1024, 65535):04X}"
                state = rng.choice([0x01, 0x06, 0x08])
            f.write(_ip_line(slot, local, remote, state, 1000, next_inode()))

    with open(os.path.join(net, "udp"), "w") as f:
        f.write(TCP_HEADER)
        for slot in range(count // 4):
            local = f"{_hex_ipv4(rng.choice(ips))}:{rng.choice([53, 123, 5353]):04X}"
            f.write(_ip_line(slot, local, "00000000:0000", 0x07, 0, next_inode()))

    for name in ("tcp6", "udp6"):
        with open(os.path.join(net, name), "w") as f:
            f.write(TCP_HEADER)
            f.write(_ip_line(0, "00000000000000000000000001000000:0016",
                             "00000000000000000000000000000000:0000", 0x0A, 0, next_inode()))

    with open(os.path.join(net, "unix"), "w") as f:
        f.write(UNIX_HEADER)
        for slot in range(count // 2):
            path = f" /run/user/1000/sock{slot}" if slot % 2 == 0 else ""
            f.write(f"0000000000000000: 00000002 00000000 00010000 0001 01 {next_inode()}{path}\n")

    with open(os.path.join(net, "netlink"), "w") as f:
        f.write(NETLINK_HEADER)
        for slot in range(3):
            f.write(f"0000000000000000 0   {rng.randint(1, 99999):<10d} 00000011 0        0        "
                    f"0        2         0         {next_inode()}\n")

    print(f"Fake procfs written to {root}")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Generate a fake procfs tree for HostScope")
    parser.add_argument("root", help="Directory to write the tree to")
    parser.add_argument("--count", type=int, default=20, help="Number of TCP sockets")
    parser.add_argument("--seed", type=int, help="Random seed")
    args = parser.parse_args()

    generate_sample_procfs(args.root, args.count, args.seed)
