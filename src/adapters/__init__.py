"""Adapters package for notifilter.

Adapters hold every OS, file and network touchpoint (sockets, shared files,
process control, alert delivery) behind the ports the core defines.
"""
