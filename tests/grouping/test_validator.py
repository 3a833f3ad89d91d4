import unittest

from commit_planner.grouping.group_model import CommitGroup
from commit_planner.grouping.validator import build_catch_all_group, next_group_id, validate_plan


def group(gid, files):
    return CommitGroup(id=gid, type="feat", files=list(files), message="do things")


class TestValidatePlan(unittest.TestCase):
    def test_drops_hallucinated_files_and_empty_groups(self) -> None:
        commits = [group("c1", ["a.py", "ghost.py"]), group("c2", ["phantom.py"])]
        result = validate_plan(commits, ["a.py", "b.py"])
        self.assertEqual([g.id for g in result.commits], ["c1"])
        self.assertEqual(result.commits[0].files, ["a.py"])
        self.assertEqual(result.hallucinated, ["ghost.py", "phantom.py"])
        self.assertEqual(result.missing, ["b.py"])

    def test_first_assignment_wins(self) -> None:
        commits = [group("c1", ["a.py"]), group("c2", ["a.py", "b.py"]), group("c3", ["b.py"])]
        result = validate_plan(commits, ["a.py", "b.py"])
        self.assertEqual([(g.id, g.files) for g in result.commits], [("c1", ["a.py"]), ("c2", ["b.py"])])
        self.assertEqual(result.duplicates, [("a.py", "c2"), ("b.py", "c3")])
        self.assertEqual(result.missing, [])

    def test_repeated_ids_are_renumbered(self) -> None:
        commits = [group("c1", ["a.py"]), group("c1", ["b.py"]), group("c2", ["c.py"])]
        result = validate_plan(commits, ["a.py", "b.py", "c.py"])
        self.assertEqual([(g.id, g.files) for g in result.commits],
                         [("c1", ["a.py"]), ("c3", ["b.py"]), ("c2", ["c.py"])])

    def test_missing_keeps_ground_truth_order(self) -> None:
        result = validate_plan([], ["z.py", "a.py"])
        self.assertEqual(result.missing, ["z.py", "a.py"])


class TestCatchAll(unittest.TestCase):
    def test_next_group_id_skips_taken_numbers(self) -> None:
        commits = [group("c1", []), group("c7", []), group("custom", [])]
        self.assertEqual(next_group_id(commits), "c8")
        self.assertEqual(next_group_id([]), "c1")

    def test_single_file_message(self) -> None:
        catch_all = build_catch_all_group(["src/deep/util.py"], 2, [group("c1", ["x"])])
        self.assertEqual(catch_all.id, "c2")
        self.assertEqual(catch_all.header(), "chore: update util.py")
        self.assertEqual(catch_all.confidence, 0.3)
        self.assertTrue(catch_all.reasoning.internal_only)

    def test_many_files_preview(self) -> None:
        files = [f"f{i}.txt" for i in range(5)]
        catch_all = build_catch_all_group(files, 5, [])
        self.assertEqual(catch_all.message, "update 5 remaining files")
        self.assertIn("after 5 reconciliation iteration(s)", catch_all.reasoning.explanation)
        self.assertIn("f0.txt, f1.txt, f2.txt and 2 more", catch_all.reasoning.explanation)


if __name__ == "__main__":
    unittest.main()
