import ipaddress


def subnet_cidrs(vpc_cidr: str, count: int, *, prefix: int = 24, offset: int = 0) -> list[str]:
    """Carve `count` consecutive /prefix blocks out of vpc_cidr, skipping the first `offset`."""
    network = ipaddress.ip_network(vpc_cidr, strict=True)
    if prefix < network.prefixlen:
        raise ValueError(f"Subnet prefix /{prefix} is larger than the VPC range {vpc_cidr}")

    blocks = network.subnets(new_prefix=prefix)
    out: list[str] = []
    for i, block in enumerate(blocks):
        if i < offset:
            continue
        out.append(str(block))
        if len(out) == count:
            return out
    raise ValueError(f"{vpc_cidr} has room for fewer than {offset + count} /{prefix} subnets")
