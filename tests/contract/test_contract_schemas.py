import unittest

from shimdeploy.contract_store import ContractStore
from shimdeploy.resources import contracts_schemas_dir


class TestContractSchemas(unittest.TestCase):
    def setUp(self) -> None:
        self.store = ContractStore(contracts_schemas_dir())
        self.store.load()

    def test_schemas_are_valid(self) -> None:
        self.assertEqual(self.store.check_schemas(), [])
        self.assertEqual(
            self.store.list_schema_names(),
            ["agent_config.schema.json", "lifecycle_result.schema.json", "trace_event.schema.json"],
        )

    def test_validate_reports_paths(self) -> None:
        errors = self.store.validate("agent_config.schema.json", {"crio": {"runtimes": [{"name": "kata"}]}})
        self.assertEqual(len(errors), 1)
        self.assertTrue(errors[0].startswith("crio/runtimes/0:"))

    def test_unknown_schema_raises(self) -> None:
        with self.assertRaises(KeyError):
            self.store.validate("nope.schema.json", {})
