"""Core domain package for jabberlink.

Core contains address resolution, proxy chaining, TLS trust policy and the
enrollment wizard. DNS, terminal and config-file access stay in adapters;
the only sockets opened here are the TCP and SOCKS hops of a proxy chain,
whose composition order is part of the connection rules.
"""
