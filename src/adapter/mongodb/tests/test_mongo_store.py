"""Tests for MongoStore against a mocked pymongo database."""

import unittest
from unittest.mock import MagicMock, patch

from bson import ObjectId
from pymongo.errors import (
    AutoReconnect,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from adapter.mongodb.connection import connect_mongo
from adapter.mongodb.ids import from_object_id, to_object_id
from adapter.mongodb.indexes import create_index_safe, user_indexes
from adapter.mongodb.store import MongoStore, compile_filter, compile_patch
from domain.model.errors import (
    ConflictError,
    InvalidIdentifierError,
    NotFoundError,
    PersistenceError,
    StoreTimeout,
    StoreUnavailable,
    ValidationError,
)
from domain.model.query import Filter, Op

OID = ObjectId('65a1f0c2e4b0a1b2c3d4e5f6')
HEX = '65a1f0c2e4b0a1b2c3d4e5f6'


def _mock_db():
    mock_collection = MagicMock()
    mock_db = MagicMock()
    mock_db.__getitem__.return_value = mock_collection
    mock_db.name = 'authcore'
    return mock_db, mock_collection


class TestIds(unittest.TestCase):

    def test_round_trip(self):
        self.assertEqual(to_object_id(HEX), OID)
        self.assertEqual(from_object_id(OID), HEX)

    def test_object_id_passes_through(self):
        self.assertIs(to_object_id(OID), OID)

    def test_malformed_ids_raise(self):
        for bad in ['', 'xyz', HEX[:-1], HEX + '0', 'zz' * 12, None, 123, b'123456789012']:
            with self.subTest(value=bad):
                with self.assertRaises(InvalidIdentifierError):
                    to_object_id(bad)

    def test_invalid_identifier_is_validation_error(self):
        self.assertTrue(issubclass(InvalidIdentifierError, ValidationError))


class TestCompileFilter(unittest.TestCase):

    def test_id_condition_uses_object_id(self):
        self.assertEqual(compile_filter(Filter.by_id(HEX)), {'_id': {'$eq': OID}})

    def test_operators_merge_per_field(self):
        f = Filter().and_('age', Op.GTE, 18).and_('age', Op.LT, 65).and_('email', Op.NE, 'x')
        self.assertEqual(compile_filter(f), {
            'age': {'$gte': 18, '$lt': 65},
            'email': {'$ne': 'x'},
        })

    def test_in_condition_converts_each_id(self):
        f = Filter().and_('id', Op.IN, (HEX,))
        self.assertEqual(compile_filter(f), {'_id': {'$in': [OID]}})

    def test_native_query_passes_through(self):
        query = {'email': 'a@x.com', 'custom_attributes.age': {'$gt': 3}}
        self.assertEqual(compile_filter(query), query)

    def test_native_query_translates_id(self):
        self.assertEqual(compile_filter({'id': HEX}), {'_id': OID})
        self.assertEqual(compile_filter({'id': {'$in': [HEX]}}), {'_id': {'$in': [OID]}})

    def test_malformed_id_raises(self):
        with self.assertRaises(InvalidIdentifierError):
            compile_filter(Filter.by_id('not-hex'))

    def test_none_matches_everything(self):
        self.assertEqual(compile_filter(None), {})


class TestCompilePatch(unittest.TestCase):

    def test_plain_patch_becomes_set(self):
        self.assertEqual(compile_patch({'a': 1}), {'$set': {'a': 1}})

    def test_native_update_passes_through(self):
        update = {'$set': {'custom_attributes.bio': 'x'}, '$unset': {'old': ''}}
        self.assertEqual(compile_patch(update), update)

    def test_rejects_bad_patches(self):
        for bad in [{}, {'$set': {'a': 1}, 'b': 2}, {'id': HEX}, {'$set': {'_id': OID}}]:
            with self.subTest(patch=bad):
                with self.assertRaises(ValidationError):
                    compile_patch(bad)


class TestMongoStoreCrud(unittest.TestCase):

    def setUp(self):
        self.db, self.collection = _mock_db()
        self.store = MongoStore(self.db)

    def test_create_one_returns_hex_id(self):
        self.collection.insert_one.return_value.inserted_id = OID

        record_id = self.store.create_one('users', {'email': 'a@x.com'})

        self.assertEqual(record_id, HEX)
        self.db.__getitem__.assert_called_with('users')
        self.collection.insert_one.assert_called_once_with({'email': 'a@x.com'})

    def test_create_one_rejects_caller_id(self):
        with self.assertRaises(ValidationError):
            self.store.create_one('users', {'id': HEX})
        self.collection.insert_one.assert_not_called()

    def test_find_one_normalizes_id(self):
        self.collection.find_one.return_value = {'_id': OID, 'email': 'a@x.com'}

        record = self.store.find_one('users', Filter.by_id(HEX))

        self.assertEqual(record, {'id': HEX, 'email': 'a@x.com'})
        self.collection.find_one.assert_called_once_with({'_id': {'$eq': OID}})

    def test_find_one_missing(self):
        self.collection.find_one.return_value = None
        with self.assertRaises(NotFoundError):
            self.store.find_one('users', {'email': 'nobody@x.com'})

    def test_find_many_materializes(self):
        other = ObjectId()
        self.collection.find.return_value = iter([
            {'_id': OID, 'email': 'a@x.com'},
            {'_id': other, 'email': 'b@x.com'},
        ])

        records = self.store.find_many('users', {'email': {'$regex': 'x.com$'}})

        self.assertEqual([r['id'] for r in records], [HEX, str(other)])
        self.assertTrue(all('_id' not in r for r in records))

    def test_update_one(self):
        self.collection.update_one.return_value.matched_count = 1

        self.assertTrue(self.store.update_one('users', Filter.by_id(HEX), {'custom_attributes': {'bio': 'x'}}))
        self.collection.update_one.assert_called_once_with(
            {'_id': {'$eq': OID}},
            {'$set': {'custom_attributes': {'bio': 'x'}}},
        )

    def test_update_one_missing(self):
        self.collection.update_one.return_value.matched_count = 0
        with self.assertRaises(NotFoundError):
            self.store.update_one('users', Filter.by_id(HEX), {'a': 1})

    def test_update_many_returns_matched(self):
        self.collection.update_many.return_value.matched_count = 3
        self.assertEqual(self.store.update_many('users', {}, {'a': 1}), 3)

    def test_delete_one(self):
        self.collection.delete_one.return_value.deleted_count = 1
        self.assertTrue(self.store.delete_one('users', Filter.by_id(HEX)))
        self.collection.delete_one.assert_called_once_with({'_id': {'$eq': OID}})

    def test_delete_one_missing(self):
        self.collection.delete_one.return_value.deleted_count = 0
        with self.assertRaises(NotFoundError):
            self.store.delete_one('users', Filter.by_id(HEX))

    def test_delete_many_returns_count(self):
        self.collection.delete_many.return_value.deleted_count = 2
        self.assertEqual(self.store.delete_many('users', {'email': 'a@x.com'}), 2)

    def test_malformed_id_never_reaches_driver(self):
        with self.assertRaises(InvalidIdentifierError):
            self.store.find_one('users', Filter.by_id('bad'))
        self.collection.find_one.assert_not_called()


class TestMongoStoreErrors(unittest.TestCase):

    def setUp(self):
        self.db, self.collection = _mock_db()
        self.store = MongoStore(self.db)

    def _assert_translated(self, driver_error, expected):
        self.collection.find_one.side_effect = driver_error
        with self.assertRaises(expected) as ctx:
            self.store.find_one('users', {'email': 'a@x.com'})
        self.assertIs(ctx.exception.__cause__, driver_error)

    def test_duplicate_key_is_conflict(self):
        self.collection.insert_one.side_effect = DuplicateKeyError('E11000 duplicate key', code=11000)
        with self.assertRaises(ConflictError):
            self.store.create_one('users', {'email': 'a@x.com'})

    def test_execution_timeout(self):
        self._assert_translated(ExecutionTimeout('operation exceeded time limit', code=50), StoreTimeout)

    def test_server_selection_timeout_is_unavailable(self):
        self._assert_translated(ServerSelectionTimeoutError('no servers'), StoreUnavailable)

    def test_connection_failure_is_unavailable(self):
        self._assert_translated(AutoReconnect('connection reset'), StoreUnavailable)

    def test_other_driver_errors_are_persistence_errors(self):
        self._assert_translated(OperationFailure('bad query', code=2), PersistenceError)

    def test_store_errors_share_base(self):
        self.assertTrue(issubclass(StoreTimeout, PersistenceError))
        self.assertTrue(issubclass(StoreUnavailable, PersistenceError))


class TestIndexes(unittest.TestCase):

    def test_ensure_indexes_creates_unique_email(self):
        db, collection = _mock_db()
        store = MongoStore(db)

        self.assertTrue(store.ensure_indexes('users'))

        collection.create_index.assert_any_call([('email', 1)], name='idx_users_email', unique=True)
        collection.create_index.assert_any_call([('created_at', -1)], name='idx_users_created_at')

    def test_ensure_indexes_raises_driver_failures(self):
        db, collection = _mock_db()
        collection.create_index.side_effect = OperationFailure('not authorized', code=13)

        with self.assertRaises(PersistenceError):
            MongoStore(db).ensure_indexes('users')

    def test_ensure_indexes_unreachable_server(self):
        db, collection = _mock_db()
        collection.create_index.side_effect = ServerSelectionTimeoutError('no servers')

        with self.assertRaises(StoreUnavailable):
            MongoStore(db).ensure_indexes('users')

    def test_ensure_indexes_unresolved_conflict_returns_false(self):
        db, collection = _mock_db()
        collection.create_index.side_effect = OperationFailure('Index already exists', code=85)
        collection.index_information.return_value = {'_id_': {'key': [('_id', 1)]}}

        self.assertFalse(MongoStore(db).ensure_indexes('users'))

    def test_create_index_safe_recreates_conflicting_index(self):
        collection = MagicMock()
        collection.create_index.side_effect = [
            OperationFailure('Index already exists with different options', code=85),
            'idx_users_email',
        ]
        collection.index_information.return_value = {
            '_id_': {'key': [('_id', 1)]},
            'idx_users_email': {'key': [('email', 1)]},
        }

        self.assertTrue(create_index_safe(collection, [('email', 1)], 'idx_users_email', unique=True))
        collection.drop_index.assert_called_once_with('idx_users_email')
        self.assertEqual(collection.create_index.call_count, 2)

    def test_create_index_safe_replaces_renamed_index(self):
        collection = MagicMock()
        collection.create_index.side_effect = [
            OperationFailure('Index already exists with a different name: email_1', code=85),
            'idx_users_email',
        ]
        collection.index_information.return_value = {
            '_id_': {'key': [('_id', 1)]},
            'email_1': {'key': [('email', 1)], 'unique': True},
        }

        self.assertTrue(create_index_safe(collection, [('email', 1)], 'idx_users_email', unique=True))
        collection.drop_index.assert_called_once_with('email_1')

    def test_user_indexes_are_named_per_collection(self):
        specs = user_indexes('accounts')
        self.assertEqual([s.name for s in specs], ['idx_accounts_email', 'idx_accounts_created_at'])
        self.assertEqual(specs[0].options, {'unique': True})

    def test_create_index_safe_reraises_other_errors(self):
        collection = MagicMock()
        collection.create_index.side_effect = OperationFailure('not authorized', code=13)
        with self.assertRaises(OperationFailure):
            create_index_safe(collection, [('email', 1)], 'idx_users_email')


class TestConnection(unittest.TestCase):

    @patch('adapter.mongodb.connection.MongoClient')
    def test_connect_returns_store(self, mock_client_cls):
        mock_client = MagicMock()
        mock_client_cls.return_value = mock_client

        store = connect_mongo('mongodb://localhost:27017', 'authdb')

        self.assertIsInstance(store, MongoStore)
        mock_client.admin.command.assert_called_once_with('ping')
        mock_client.__getitem__.assert_called_once_with('authdb')
        self.assertIs(store.client, mock_client)
        self.assertTrue(mock_client_cls.call_args.kwargs['tz_aware'])

        store.close()
        mock_client.close.assert_called_once()

    @patch('adapter.mongodb.connection.MongoClient')
    def test_connect_failure_is_unavailable(self, mock_client_cls):
        mock_client = MagicMock()
        mock_client.admin.command.side_effect = ConnectionFailure('refused')
        mock_client_cls.return_value = mock_client

        with self.assertRaises(StoreUnavailable):
            connect_mongo('mongodb://localhost:27017')
        mock_client.close.assert_called_once()

    @patch('adapter.mongodb.connection.MongoClient')
    def test_connect_timeout(self, mock_client_cls):
        mock_client = MagicMock()
        mock_client.admin.command.side_effect = ExecutionTimeout('ping timed out', code=50)
        mock_client_cls.return_value = mock_client

        with self.assertRaises(StoreTimeout):
            connect_mongo('mongodb://localhost:27017')


if __name__ == '__main__':
    unittest.main()
