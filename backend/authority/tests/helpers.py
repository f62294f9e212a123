"""Constants shared by credential authority tests."""

TEST_PRIVATE_KEY = bytes(range(32))
