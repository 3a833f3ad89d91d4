import unittest

from commit_planner.analyzer.file_profiler import FileProfile
from commit_planner.grouping.change_classifier import (
    categorize_file,
    category_to_type,
    implementation_stem,
    infer_type_from_shape,
    is_test_file,
)


class TestChangeClassifier(unittest.TestCase):
    def test_categories(self) -> None:
        self.assertEqual(categorize_file("tests/test_parser.py"), "test")
        self.assertEqual(categorize_file("src/app.spec.ts"), "test")
        self.assertEqual(categorize_file("docs/guide.txt"), "docs")
        self.assertEqual(categorize_file("README.rst"), "docs")
        self.assertEqual(categorize_file(".github/workflows/ci.yml"), "ci")
        self.assertEqual(categorize_file("package.json"), "config")
        self.assertEqual(categorize_file("Makefile"), "build")
        self.assertEqual(categorize_file("src/parser.py"), "src:src")
        self.assertEqual(categorize_file("main.go"), "src:root")

    def test_is_test_file(self) -> None:
        self.assertTrue(is_test_file("pkg/parser_test.py"))
        self.assertTrue(is_test_file("conftest.py"))
        self.assertFalse(is_test_file("src/testing_utils.py"))

    def test_implementation_stem(self) -> None:
        self.assertEqual(implementation_stem("tests/test_parser.py"), "parser")
        self.assertEqual(implementation_stem("src/app.spec.ts"), "app")
        self.assertIsNone(implementation_stem("src/app.ts"))

    def test_type_from_shape(self) -> None:
        added = FileProfile("a.py", "added", 10, 0, is_new_file=True)
        modified = FileProfile("b.py", "modified", 4, 6)
        deleted = FileProfile("c.py", "deleted", 0, 9)
        self.assertEqual(infer_type_from_shape([added]), "feat")
        self.assertEqual(infer_type_from_shape([modified]), "refactor")
        self.assertEqual(infer_type_from_shape([deleted]), "chore")
        self.assertEqual(category_to_type("docs", [modified]), "docs")
        self.assertEqual(category_to_type("config", [added]), "chore")
        self.assertEqual(category_to_type("src:src", [added]), "feat")


if __name__ == "__main__":
    unittest.main()
