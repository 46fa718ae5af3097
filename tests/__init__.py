"""
Test package for tarantool-do.

This package contains:
- test_codec.py: Frame encoding and decoding
- test_greeting.py: Greeting parsing
- test_connection.py: StreamConnection against a live socket
- test_handler.py: Request multiplexing and middleware chains
- test_middleware.py: Retry, logging and firewall middlewares
- test_auth.py: Authentication handshake
- test_schema.py: Space and index name resolution
- test_client.py: Client facade and spaces
- test_sql.py: SQL result wrappers
- test_config.py: Option validation and environment config
- test_errors.py: Error hierarchy and helpers
- mock_server.py: Scripted IPROTO server for testing
- conftest.py: Pytest configuration and fixtures
"""
