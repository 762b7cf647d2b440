import os
import sys
import unittest
from unittest.mock import MagicMock, call, patch

import botocore.exceptions
import requests

from glacierbackup import *
from tests.config import *


@patch('glacierbackup.glacierbackup.ConfigManager.check_update', return_value=False)
@patch('builtins.print')
class TestCommands(unittest.TestCase):
    '''Test the glacierbackup command line.'''

    # Method executed before every test
    def setUp(self):

        init_glacierbackup(self)

        self.keys_file = write_keys_file(
            os.path.join(self.tmp_dir, 'objects.txt'), '\n'.join(KEYS) + '\n')

        self.credentials_patcher = patch.object(
            AWSBoto, 'check_credentials', return_value=True)
        self.credentials_patcher.start()

    # Method executed after every test
    def tearDown(self):

        self.credentials_patcher.stop()
        deinit_glacierbackup(self)

    def test_restore(self, mock_print, mock_update):
        '''- "glacierbackup restore" requests every key with the default days and tier.'''

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file, '--bucket', S3_BUCKET_NAME_1]), \
                patch.object(AWSBoto, 'restore_object', return_value='triggered') as mock_restore:
            self.assertIsNone(main())

        self.assertEqual(mock_restore.call_args_list, [
            call(S3_BUCKET_NAME_1, key, days=DEFAULT_RESTORE_DAYS, tier=DEFAULT_RESTORE_TIER)
            for key in KEYS
        ])

    def test_restore_options(self, mock_print, mock_update):
        '''- Days and tier given on the command line are used.'''

        with \
                patch('sys.argv', ['glacierbackup', 'rst', self.keys_file, '-b', S3_BUCKET_NAME_1,
                                   '-t', str(RESTORE_DAYS_2), '-r', RESTORE_TIER_2]), \
                patch.object(AWSBoto, 'restore_object', return_value='triggered') as mock_restore:
            main()

        mock_restore.assert_called_with(S3_BUCKET_NAME_1, KEYS[-1],
                                        days=RESTORE_DAYS_2, tier=RESTORE_TIER_2)

    def test_restore_uses_profile(self, mock_print, mock_update):
        '''- Bucket, days and tier come from the profile when not given.'''

        write_config(self.config_home, f'''
[DEFAULT_PROFILE]
profile = {PROFILE_1}

[{PROFILE_1}]
bucket_name = {S3_BUCKET_NAME_2}
restore_days = {RESTORE_DAYS_2}
restore_tier = {RESTORE_TIER_2}
''')

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file]), \
                patch.object(AWSBoto, 'restore_object', return_value='triggered') as mock_restore:
            main()

        self.assertEqual(mock_restore.call_count, len(KEYS))
        mock_restore.assert_called_with(S3_BUCKET_NAME_2, KEYS[-1],
                                        days=RESTORE_DAYS_2, tier=RESTORE_TIER_2)

    def test_restore_failure_exit_status(self, mock_print, mock_update):
        '''- A run with failed keys requests every key and exits with 1.'''

        error = botocore.exceptions.ClientError(
            {'Error': {'Code': 'InvalidObjectState', 'Message': 'Object is not archived'}},
            'RestoreObject')

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file, '--bucket', S3_BUCKET_NAME_1]), \
                patch.object(AWSBoto, 'restore_object', side_effect=[error, 'triggered', 'restoring']) as mock_restore:
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)
        self.assertEqual(mock_restore.call_count, len(KEYS))

    def test_restore_zero_days(self, mock_print, mock_update):
        '''- "--days 0" is rejected, not replaced by the default.'''

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file, '-b', S3_BUCKET_NAME_1, '-t', '0']), \
                patch.object(AWSBoto, 'restore_object', return_value='triggered') as mock_restore:
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)
        mock_restore.assert_not_called()

    def test_restore_invalid_utf8_key_file(self, mock_print, mock_update):
        '''- An undecodable line fails alone, the keys around it are requested.'''

        with open(self.keys_file, 'wb') as f:
            f.write(b'a\nb\xff\nc\n')

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file, '-b', S3_BUCKET_NAME_1]), \
                patch.object(AWSBoto, 'restore_object', return_value='triggered') as mock_restore:
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)
        self.assertEqual([c.args[1] for c in mock_restore.call_args_list], ['a', 'c'])

    def test_restore_without_bucket(self, mock_print, mock_update):
        '''- Restore without bucket fails before any request.'''

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file]), \
                patch.object(AWSBoto, 'restore_object') as mock_restore:
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)
        mock_restore.assert_not_called()

    def test_restore_missing_keys_file(self, mock_print, mock_update):
        '''- A missing key file makes the command fail.'''

        with patch('sys.argv', ['glacierbackup', 'restore', os.path.join(self.tmp_dir, 'nope.txt'),
                                '--bucket', S3_BUCKET_NAME_1]):
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)

    def test_invalid_credentials(self, mock_print, mock_update):
        '''- Commands that talk to S3 exit when the credentials are not valid.'''

        with \
                patch('sys.argv', ['glacierbackup', 'restore', self.keys_file, '--bucket', S3_BUCKET_NAME_1]), \
                patch.object(AWSBoto, 'check_credentials', return_value=False), \
                patch.object(AWSBoto, 'restore_object') as mock_restore:
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)
        mock_restore.assert_not_called()

    def test_list(self, mock_print, mock_update):
        '''- "glacierbackup list" passes its options through.'''

        output = os.path.join(self.tmp_dir, 'listed.txt')

        with \
                patch('sys.argv', ['glacierbackup', 'list', '-b', S3_BUCKET_NAME_1, '-o', output,
                                   '-x', 'photos/', '--glacier-only', '--overwrite']), \
                patch.object(Restorer, 'list_objects', return_value=3) as mock_list:
            main()

        mock_list.assert_called_once()
        self.assertEqual(mock_list.call_args.args[1], S3_BUCKET_NAME_1)
        self.assertEqual(mock_list.call_args.kwargs, {'output': output,
                                                      'prefix': 'photos/',
                                                      'glacier_only': True,
                                                      'overwrite': True})

    def test_status(self, mock_print, mock_update):
        '''- "glacierbackup status" asks the status of every key.'''

        with \
                patch('sys.argv', ['glacierbackup', 'status', self.keys_file, '-b', S3_BUCKET_NAME_1]), \
                patch.object(AWSBoto, 'get_restore_status', return_value='restoring') as mock_status:
            main()

        self.assertEqual(mock_status.call_args_list,
                         [call(S3_BUCKET_NAME_1, key) for key in KEYS])

    def test_backup(self, mock_print, mock_update):
        '''- "glacierbackup backup" syncs the directory with the chosen storage class.'''

        root = os.path.join(self.tmp_dir, 'pictures')
        os.makedirs(root)

        with \
                patch('sys.argv', ['glacierbackup', 'backup', root, '-b', S3_BUCKET_NAME_1,
                                   '-s', S3_STORAGE_CLASS_2]), \
                patch.object(Backup, 'sync', return_value=([], [])) as mock_sync:
            main()

        mock_sync.assert_called_once()
        self.assertEqual(mock_sync.call_args.args[0], os.path.realpath(root))
        self.assertEqual(mock_sync.call_args.args[2], S3_BUCKET_NAME_1)

    def test_backup_upload_failure(self, mock_print, mock_update):
        '''- A failed upload makes the backup command fail.'''

        root = os.path.join(self.tmp_dir, 'pictures')
        os.makedirs(root)

        with \
                patch('sys.argv', ['glacierbackup', 'backup', root, '-b', S3_BUCKET_NAME_1]), \
                patch.object(Backup, 'sync', side_effect=UploadFailedError('S3 upload failed')):
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)

    def test_version(self, mock_print, mock_update):
        '''- "glacierbackup --version" prints the version and exits with 0.'''

        with patch('sys.argv', ['glacierbackup', '--version']):
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 0)
        mock_print.assert_any_call(f'glacierbackup v{get_version()}')

    def test_no_arguments(self, mock_print, mock_update):
        '''- Without arguments the help is printed and the exit status is 1.'''

        with \
                patch('sys.argv', ['glacierbackup']), \
                patch('argparse.ArgumentParser.print_help') as mock_help:
            with self.assertRaises(SystemExit) as cm:
                main()

        self.assertEqual(cm.exception.code, 1)
        mock_help.assert_called_once()


@patch('builtins.print')
class TestUpdate(unittest.TestCase):
    '''Test the update check.'''

    def setUp(self):

        with patch('sys.argv', ['glacierbackup', 'update']):
            self.cmd = Commands()

    @patch('requests.get')
    def test_update_available(self, mock_get, mock_print):
        '''- A newer release on PyPI is announced.'''

        mock_get.return_value = MagicMock(status_code=200)
        mock_get.return_value.json.return_value = {'info': {'version': '999.0.0'}}

        self.assertTrue(self.cmd.subcmd_update(mute_no_update=False))
        mock_print.assert_any_call(f'\nA glacierbackup update is available!')

    @patch('requests.get')
    def test_update_unreachable(self, mock_get, mock_print):
        '''- A network error is reported, not raised.'''

        mock_get.side_effect = requests.exceptions.ConnectionError('offline')

        self.assertFalse(self.cmd.subcmd_update(mute_no_update=True))

    def test_compare_versions(self, mock_print):
        '''- Versions compare numerically, part by part.'''

        self.assertGreater(compare_versions('0.10.0', '0.9.9'), 0)
        self.assertEqual(compare_versions('1.0', '1.0.0'), 0)
        self.assertLess(compare_versions('1.2.3', '1.3'), 0)


if __name__ == '__main__':

    try:
        unittest.main(verbosity=2)

    except KeyboardInterrupt:
        print("\nTests interrupted by the user. Exiting...")
        sys.exit(1)
