"""
Module providing the multicast transport used to exchange discovery messages.
"""
import logging
import select
import socket
import threading
from typing import Callable, Optional, Tuple

from beacon.discovery.config import (
    MAXIMUM_MESSAGE_SIZE,
    MULTICAST_GROUP,
    MULTICAST_PORT,
    MULTICAST_TTL,
)
from beacon.discovery.errors import TransportError

IP_ADDRESS_ANY = "0.0.0.0"
RECEIVE_POLL_INTERVAL = 0.1

DatagramHandler = Callable[[bytes, Tuple[str, int]], None]


def configure_reusable_socket() -> socket.socket:
    """
    Sets up a UDP socket whose address and port can be shared with other processes.

    :return: A socket.
    """
    # IPv4 UDP socket
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    if hasattr(socket, "SO_REUSEPORT"):
        s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
    return s


def _membership_request(group: str, interface: Optional[str]) -> bytes:
    return socket.inet_aton(group) + socket.inet_aton(interface or IP_ADDRESS_ANY)


class MulticastTransport:
    """
    A single UDP socket that both sends to and receives from a multicast group.

    :param group: The multicast group to join.
    :param port: The port to bind and send to. ``0`` binds an ephemeral port, which
        is then used as the destination port too.
    :param ttl: Time to live of sent datagrams.
    :param interface: Optional IPv4 address of the local interface to use.
    :param loopback: Whether datagrams sent are also delivered to this host.
    """

    def __init__(
        self,
        group: str = MULTICAST_GROUP,
        port: int = MULTICAST_PORT,
        ttl: int = MULTICAST_TTL,
        interface: Optional[str] = None,
        loopback: bool = True,
    ):
        self.logger = logging.getLogger(__name__)
        self.group = group
        self.ttl = ttl
        self.interface = interface
        self.loopback = loopback
        self._requested_port = port
        self._bound_port: Optional[int] = None
        self._socket: Optional[socket.socket] = None
        self._joined = False
        self._cancel = threading.Event()
        self._receive_thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_open(self) -> bool:
        return self._socket is not None

    @property
    def port(self) -> int:
        if self._bound_port is None:
            return self._requested_port
        return self._bound_port

    @property
    def group_address(self) -> Tuple[str, int]:
        return self.group, self.port

    @property
    def receiving(self) -> bool:
        return self._receive_thread is not None

    def open(self):
        """
        Binds the socket and joins the multicast group.

        :raises TransportError: If the port cannot be bound or shared, or the group
            cannot be joined.
        """
        with self._lock:
            if self._socket is not None:
                raise RuntimeError("Multicast transport already open!")
            s = None
            try:
                s = configure_reusable_socket()
                s.bind((IP_ADDRESS_ANY, self._requested_port))
                s.setsockopt(socket.IPPROTO_IP, socket.IP_MULTICAST_TTL, self.ttl)
                s.setsockopt(
                    socket.IPPROTO_IP, socket.IP_MULTICAST_LOOP, int(self.loopback)
                )
                if self.interface is not None:
                    s.setsockopt(
                        socket.IPPROTO_IP,
                        socket.IP_MULTICAST_IF,
                        socket.inet_aton(self.interface),
                    )
                s.setsockopt(
                    socket.IPPROTO_IP,
                    socket.IP_ADD_MEMBERSHIP,
                    _membership_request(self.group, self.interface),
                )
            except OSError as e:
                if s is not None:
                    s.close()
                raise TransportError(
                    f"Could not join multicast group {self.group} on port {self._requested_port}: {e}"
                ) from e
            self._socket = s
            self._bound_port = s.getsockname()[1]
            self._joined = True
            self._cancel.clear()
        self.logger.info(
            f"Joined multicast group {self.group} on port {self.port} (ttl {self.ttl})"
        )

    def send_to_group(self, data: bytes) -> bool:
        """
        Sends a datagram to the multicast group without waiting for anything.

        A failure is logged rather than raised, as the next periodic send will
        naturally retry.

        :param data: The message to send.
        :return: Whether the datagram was handed to the operating system.
        """
        s = self._socket
        if s is None:
            self.logger.warning(
                TransportError("Cannot send, multicast transport is not open.")
            )
            return False
        try:
            s.sendto(data, self.group_address)
        except OSError as e:
            self.logger.warning(
                TransportError(f"Error sending to {self.group}:{self.port}: {e}")
            )
            return False
        return True

    def start_receiving(self, handler: DatagramHandler):
        """
        Runs :meth:`receive_loop` on a dedicated daemon thread.
        """
        if self._socket is None:
            raise RuntimeError("Multicast transport is not open.")
        if self._receive_thread is not None:
            raise RuntimeError("Multicast transport already receiving!")
        self._receive_thread = threading.Thread(
            target=self.receive_loop,
            args=(handler,),
            name=f"multicast-receive-{self.port}",
            daemon=True,
        )
        self._receive_thread.start()

    def receive_loop(self, handler: DatagramHandler):
        """
        Passes every datagram received to the handler until the transport is closed.

        Errors raised while receiving a datagram, or by the handler, are logged and
        the loop carries on.

        :param handler: Callable taking the datagram and the address it came from.
        """
        while not self._cancel.is_set():
            s = self._socket
            if s is None:
                break
            try:
                if not self._check_for_messages(s, RECEIVE_POLL_INTERVAL):
                    continue
                data, address = s.recvfrom(MAXIMUM_MESSAGE_SIZE)
            except (OSError, ValueError) as e:
                if self._cancel.is_set():
                    break
                self.logger.warning(TransportError(f"Error receiving datagram: {e}"))
                continue
            try:
                handler(data, address)
            except Exception:
                self.logger.exception(f"Error handling datagram from {address}")

    @staticmethod
    def _check_for_messages(s: socket.socket, timeout: float) -> bool:
        socket_list = [s]
        readable, _, exceptional = select.select(socket_list, [], socket_list, timeout)
        if len(exceptional) > 0:
            raise TransportError("Exception on socket while checking for messages.")
        return len(readable) > 0

    def close(self):
        """
        Stops receiving, leaves the multicast group and releases the socket.
        Calling it more than once, or on a transport that never opened, does nothing.
        """
        self._cancel.set()
        thread = self._receive_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._receive_thread = None
        with self._lock:
            s, self._socket = self._socket, None
            if s is None:
                return
            if self._joined:
                try:
                    s.setsockopt(
                        socket.IPPROTO_IP,
                        socket.IP_DROP_MEMBERSHIP,
                        _membership_request(self.group, self.interface),
                    )
                except OSError as e:
                    self.logger.debug(f"Error leaving multicast group {self.group}: {e}")
                self._joined = False
            s.close()
        self.logger.info(f"Left multicast group {self.group}")

    def __enter__(self):
        if not self.is_open:
            self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
