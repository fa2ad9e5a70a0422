import unittest

from factories import api_fetch, build_form_graph, build_node_graph
from graph_errors import SecurityValidationError, StructuralError
from strategy_graph import FormGraph, NodeGraph, dump_graph, parse_strategy_graph
from strategy_validation import validate_strategy_graph


class StrategyValidationTests(unittest.TestCase):
    def test_form_graph_is_validated_and_normalized(self):
        result = validate_strategy_graph(build_form_graph())
        self.assertEqual(result["mode"], "form")
        self.assertTrue(all(group["id"] for group in result["conditions"]))

    def test_node_graph_is_returned_unchanged(self):
        graph = build_node_graph([api_fetch()])
        self.assertEqual(validate_strategy_graph(graph), graph)

    def test_unknown_mode_rejected(self):
        graph = build_form_graph()
        graph["mode"] = "script"
        with self.assertRaises(StructuralError) as ctx:
            validate_strategy_graph(graph)
        self.assertEqual(ctx.exception.path, "mode")

    def test_node_structure_is_checked(self):
        graph = build_node_graph()
        del graph["nodes"][0]["id"]
        with self.assertRaises(StructuralError) as ctx:
            validate_strategy_graph(graph)
        self.assertEqual(ctx.exception.path, "nodes[0].id")

    def test_unsafe_node_graph_raises_all_errors(self):
        graph = build_node_graph([api_fetch("http://example.com"), api_fetch("https://192.168.1.1/x")])
        with self.assertRaises(SecurityValidationError) as ctx:
            validate_strategy_graph(graph)
        self.assertEqual(len(ctx.exception.errors), 2)

    def test_unrecognized_node_types_are_logged_not_rejected(self):
        graph = build_node_graph()
        graph["nodes"].append({"id": "x", "type": "oracle", "data": {}})
        with self.assertLogs("strategy_validation", level="INFO") as logs:
            self.assertEqual(validate_strategy_graph(graph), graph)
        self.assertIn("oracle", logs.output[0])

    def test_form_validator_does_not_run_on_node_graphs(self):
        graph = build_node_graph()
        graph["conditions"] = []
        validate_strategy_graph(graph)


class StrategyGraphModelTests(unittest.TestCase):
    def test_mode_discriminates_the_union(self):
        self.assertIsInstance(parse_strategy_graph(build_form_graph()), FormGraph)
        self.assertIsInstance(parse_strategy_graph(build_node_graph()), NodeGraph)

    def test_missing_mode_is_structural(self):
        graph = build_form_graph()
        del graph["mode"]
        with self.assertRaises(StructuralError):
            parse_strategy_graph(graph)

    def test_node_graph_helpers(self):
        graph = parse_strategy_graph(build_node_graph([api_fetch(), api_fetch()]))
        self.assertEqual(len(graph.nodes_of_type("api_fetch")), 2)
        self.assertEqual(graph.edges[0].source, "in")
        self.assertEqual(graph.nodes[0].position.x, 0)

    def test_dump_graph_keeps_engine_shape(self):
        dumped = dump_graph(parse_strategy_graph(build_form_graph()))
        self.assertEqual(dumped["conditions"][1]["rules"][0]["value"], [8.0, 14.0])
        self.assertEqual(dumped["mode"], "form")

        node_dump = dump_graph(parse_strategy_graph(build_node_graph()))
        self.assertNotIn("position", node_dump["nodes"][1])


if __name__ == "__main__":
    unittest.main()
