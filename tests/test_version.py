import importlib.metadata
import unittest

import codepal


class VersionTests(unittest.TestCase):
    def test_version_matches_metadata(self) -> None:
        meta_version = importlib.metadata.version("codepal")
        self.assertEqual(codepal.__version__, meta_version)


if __name__ == "__main__":
    unittest.main()
