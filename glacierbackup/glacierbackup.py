#! /usr/bin/env python3

"""
    glacierbackup keeps a local directory tree in an S3 bucket at a
    cold storage class and brings archived objects back out of Glacier.
"""

# internal modules
import sys
import os
import argparse
import configparser
import platform
import textwrap
import time
import shutil
import inspect
import traceback
from importlib import metadata

# stuff from pypi
import requests
import inquirer
import boto3
import botocore
import botocore.exceptions
from boto3.exceptions import S3UploadFailedError

logger = ""


STORAGE_CLASSES = [
    'DEEP_ARCHIVE',
    'GLACIER',
    'GLACIER_IR',
    'INTELLIGENT_TIERING',
    'ONEZONE_IA',
    'OUTPOSTS',
    'REDUCED_REDUNDANCY',
    'STANDARD',
    'STANDARD_IA'
]

ENCRYPTIONS = [
    'AES256',
    'aws:kms'
]

RESTORE_TIERS = [
    'Bulk',
    'Standard',
    'Expedited'
]

GLACIER_STORAGE_CLASSES = {'GLACIER', 'DEEP_ARCHIVE'}

DEFAULT_REGION = 'eu-west-2'
DEFAULT_STORAGE_CLASS = 'DEEP_ARCHIVE'
DEFAULT_ENCRYPTION = 'AES256'
DEFAULT_RESTORE_DAYS = 14
DEFAULT_RESTORE_TIER = 'Bulk'
DEFAULT_KEYS_FILE = 'objects.txt'

PYPI_URL = 'https://pypi.org/pypi/glacierbackup/json'


class BackupError(Exception):
    '''Base class of every error raised by glacierbackup'''


class InvalidPathError(BackupError):
    '''Could not parse path'''


class InvalidStorageClassError(BackupError):
    '''Invalid storage class'''


class InvalidServerSideEncryptionError(BackupError):
    '''Invalid server side encryption'''


class InvalidRestoreTierError(BackupError):
    '''Invalid Glacier retrieval tier'''


class KeysFileError(BackupError):
    '''The key file could not be read'''


class UploadFailedError(BackupError):
    '''S3 upload failed'''


class FileFetchFailedError(BackupError):
    '''Failed to retrieve data from server'''


class ConfigManager:
    ''' glacierbackup configuration manager

    This class manages the configuration of glacierbackup.
    It reads and writes the configuration file.'''

    def __init__(self, use_profile=None):
        ''' Initialize the ConfigManager object

        Read the configuration file (if exists) and populate the object variables.
        It follows the XDG Base Directory conventions:
        https://specifications.freedesktop.org/basedir-spec/basedir-spec-latest.html
        '''

        # Expand the ~ symbols to user's home directory
        self.home_dir = os.path.expanduser('~')

        # Data directory, holds the debug log
        xdg_data_home = os.environ.get('XDG_DATA_HOME')

        if xdg_data_home:
            self.data_dir = os.path.join(xdg_data_home, 'glacierbackup')
        else:
            self.data_dir = os.path.join(
                self.home_dir, '.local', 'share', 'glacierbackup')

        global logger
        logger = os.path.join(self.data_dir, 'glacierbackup.log')

        # Configuration directory
        xdg_config_home = os.environ.get('XDG_CONFIG_HOME')

        if xdg_config_home:
            self.config_dir = os.path.join(xdg_config_home, 'glacierbackup')
        else:
            self.config_dir = os.path.join(
                self.home_dir, '.config', 'glacierbackup')

        self.config_file = os.path.join(self.config_dir, 'config.ini')

        config = configparser.ConfigParser()
        config.read(self.config_file)

        # Last timestamp we checked for an update
        self.timestamp = config.getint('UPDATE', 'timestamp', fallback=0)

        # Check if user wants to use a specific profile for this session
        if use_profile:
            self.profile = self._profile_section(use_profile)

            if not config.has_section(self.profile):
                log(f'\nError: "{self.profile}" does not exist in the configuration file (remember case sensitive)\n')
                sys.exit(1)
        else:
            self.profile = config.get(
                'DEFAULT_PROFILE', 'profile', fallback=None)

        self.bucket_name = self.__get_option(config, 'bucket_name')
        self.region = self.__get_option(
            config, 'region', fallback=DEFAULT_REGION)
        self.credentials = self.__get_option(config, 'credentials')
        self.endpoint = self.__get_option(config, 'endpoint')
        self.storage_class = self.__get_option(
            config, 'storage_class', fallback=DEFAULT_STORAGE_CLASS)
        self.encryption = self.__get_option(
            config, 'encryption', fallback=DEFAULT_ENCRYPTION)
        self.restore_tier = self.__get_option(
            config, 'restore_tier', fallback=DEFAULT_RESTORE_TIER)

        try:
            self.restore_days = int(self.__get_option(
                config, 'restore_days', fallback=DEFAULT_RESTORE_DAYS))
        except ValueError:
            log(f'\nWarning: restore_days in {self.config_file} is not a number, '
                f'using {DEFAULT_RESTORE_DAYS}\n')
            self.restore_days = DEFAULT_RESTORE_DAYS

    @staticmethod
    def _profile_section(name):
        if name.startswith('profile '):
            return name
        return 'profile ' + name

    def __get_option(self, config, option, fallback=None):
        '''Read an option of the active profile, empty values count as missing'''

        if not self.profile:
            return fallback

        value = config.get(self.profile, option, fallback=fallback)
        if value == '':
            return fallback
        return value

    def __inquirer_check_required(self, answers, current):
        if not current:
            raise inquirer.errors.ValidationError(
                "", reason="Field is required")
        return True

    def __inquirer_check_is_number(self, answers, current):
        if not current.isdigit() or int(current) < 1:
            raise inquirer.errors.ValidationError(
                "", reason="Must be a positive number")
        return True

    def __set_configuration_entry(self, section, key, value):
        '''Set a configuration entry in the config file'''

        # Create config directory in case it does not exist
        os.makedirs(self.config_dir, exist_ok=True, mode=0o775)

        config = configparser.ConfigParser()

        if os.path.exists(self.config_file):
            config.read(self.config_file)

        if not config.has_section(section):
            config.add_section(section)

        config[section][key] = str(value)

        with open(self.config_file, 'w') as f:
            config.write(f)

        # Set the value in the config object
        setattr(self, key, value)

    def __get_configuration_entry(self, section, key, fallback=None):
        '''Get a configuration entry in the config file'''

        if not os.path.exists(self.config_file):
            return fallback

        config = configparser.ConfigParser()
        config.read(self.config_file)

        res = config.get(section, key, fallback=fallback)
        if res == '':
            res = fallback

        return res

    def print_config(self):
        '''Print the configuration file'''

        if os.path.exists(self.config_file):
            log(f'\n*** CONFIGURATION at {self.config_file} ***\n')
            with open(self.config_file, 'r') as f:
                log(f.read())
        else:
            log(f'\n*** NO CONFIGURATION FOUND ***')
            log('\nYou can configure glacierbackup using the command:')
            log('    glacierbackup config\n')

        return True

    def set_profile(self):
        '''Ask for a profile name and make it the default one'''

        log(f'\n*** SET PROFILE ***\n')

        profile = inquirer.text(
            message='Enter the profile name',
            default=(self.profile or 'profile default').replace('profile ', '', 1),
            validate=self.__inquirer_check_required)

        self.profile = self._profile_section(profile)

        self.__set_configuration_entry(
            'DEFAULT_PROFILE', 'profile', self.profile)

        return True

    def set_s3(self):
        '''Set the bucket, region, credentials and endpoint of the profile'''

        log(f'\n*** SET S3 ***\n')

        bucket_name = inquirer.text(
            message=f'Enter the S3 bucket name for "{self.profile}"',
            default=self.__get_configuration_entry(
                self.profile, 'bucket_name'),
            validate=self.__inquirer_check_required)
        self.__set_configuration_entry(
            self.profile, 'bucket_name', bucket_name)

        region = inquirer.text(
            message=f'Enter the AWS region for "{self.profile}"',
            default=self.__get_configuration_entry(
                self.profile, 'region', fallback=DEFAULT_REGION),
            validate=self.__inquirer_check_required)
        self.__set_configuration_entry(self.profile, 'region', region)

        credentials = inquirer.text(
            message=f'Enter the AWS credentials profile for "{self.profile}" (empty for the default chain)',
            default=self.__get_configuration_entry(
                self.profile, 'credentials', fallback=''))
        self.__set_configuration_entry(
            self.profile, 'credentials', credentials)

        endpoint = inquirer.text(
            message=f'Enter the S3 endpoint URL for "{self.profile}" (empty for AWS)',
            default=self.__get_configuration_entry(
                self.profile, 'endpoint', fallback=''))
        self.__set_configuration_entry(self.profile, 'endpoint', endpoint)

        # Print newline after this prompt
        log()

        return True

    def set_backup(self):
        '''Set the storage class and encryption of uploaded files'''

        log(f'\n*** SET BACKUP ***\n')

        storage_class = inquirer.list_input(
            f'Select the S3 storage class for "{self.profile}"',
            default=self.__get_configuration_entry(
                self.profile, 'storage_class', fallback=DEFAULT_STORAGE_CLASS),
            choices=STORAGE_CLASSES)
        self.__set_configuration_entry(
            self.profile, 'storage_class', storage_class)

        encryption = inquirer.list_input(
            f'Select the server side encryption for "{self.profile}"',
            default=self.__get_configuration_entry(
                self.profile, 'encryption', fallback=DEFAULT_ENCRYPTION),
            choices=ENCRYPTIONS)
        self.__set_configuration_entry(
            self.profile, 'encryption', encryption)

        return True

    def set_restore(self):
        '''Set the retention days and retrieval tier of restore requests'''

        log(f'\n*** SET RESTORE ***\n')

        restore_days = inquirer.text(
            message=f'How many days should restored objects stay readable for "{self.profile}"',
            default=self.__get_configuration_entry(
                self.profile, 'restore_days', fallback=str(DEFAULT_RESTORE_DAYS)),
            validate=self.__inquirer_check_is_number)
        self.__set_configuration_entry(
            self.profile, 'restore_days', int(restore_days))

        restore_tier = inquirer.list_input(
            f'Select the Glacier retrieval tier for "{self.profile}"',
            default=self.__get_configuration_entry(
                self.profile, 'restore_tier', fallback=DEFAULT_RESTORE_TIER),
            choices=RESTORE_TIERS)
        self.__set_configuration_entry(
            self.profile, 'restore_tier', restore_tier)

        return True

    def check_update(self):
        '''Return True once a week, recording the time of the check'''

        current_timestamp = int(time.time())

        # Less than a week since last check
        if current_timestamp - self.timestamp < (86400*7):
            return False

        self.__set_configuration_entry(
            'UPDATE', 'timestamp', current_timestamp)

        return True


class AWSBoto:
    '''AWS handler class. Every S3 call of glacierbackup goes through here.'''

    def __init__(self, args: argparse.Namespace, cfg: ConfigManager):
        '''Initialize the AWSBoto class'''

        self.args = args
        self.cfg = cfg

        self.is_session_set = False

        self.set_session(credentials_profile=cfg.credentials,
                         region=cfg.region,
                         endpoint_url=cfg.endpoint)

    def set_session(self, credentials_profile, region, endpoint_url):
        ''' Set the AWS profile for the current session'''

        try:
            if not region:
                return

            # An empty credentials profile falls back to the default boto3 chain
            session = boto3.session.Session(
                profile_name=credentials_profile or None,
                region_name=region)

            self.s3_client = session.client(
                service_name='s3',
                endpoint_url=endpoint_url or None,
                region_name=region
            )

            self.is_session_set = True

        except botocore.exceptions.ProfileNotFound:
            log(f'\nError: AWS credentials profile "{credentials_profile}" not found')

    def close_session(self):
        if hasattr(self, 's3_client'):
            self.s3_client.close()
            del self.s3_client
        self.is_session_set = False

    def check_credentials(self, prints=False):
        '''S3 credential checker'''

        try:
            if prints:
                log(f'\nChecking credentials...\n')
                log(f'  Profile: {self.cfg.profile}')
                log(f'  Credentials: {self.cfg.credentials or "default"}')
                log(f'  Region: {self.cfg.region}')
                log(f'  Endpoint: {self.cfg.endpoint}\n')

            if not self.is_session_set:
                if prints:
                    log('...credentials are NOT valid\n')
                return False

            # Command that needs credentials to be successful
            self.s3_client.list_buckets()

            if prints:
                log('...credentials are valid\n')
            return True

        except botocore.exceptions.NoCredentialsError:
            log(f"Error: No credentials found.")
            return False

        except botocore.exceptions.EndpointConnectionError:
            log(f"Error: Unable to connect to the S3 endpoint.")
            return False

        except botocore.exceptions.ClientError as e:
            error_code = e.response.get('Error', {}).get('Code')

            if error_code == 'RequestTimeTooSkewed':
                log(
                    f"Error: The time difference between S3 storage and your computer is too high:\n{e}")
            elif error_code == 'InvalidAccessKeyId':
                log(f"Error: Invalid Access Key ID\n{e}")
            elif error_code == 'SignatureDoesNotMatch':
                if "Signature expired" in str(e):
                    log(
                        f"Error: Signature expired. The system time of your computer is likely wrong:\n{e}")
                else:
                    log(f"Error: Invalid Secret Access Key:\n{e}")
            elif error_code == 'InvalidClientTokenId':
                log(f"Error: Invalid Access Key ID or Secret Access Key !")
            elif error_code == 'ExpiredToken':
                log(f"Error: Your session token has expired")
            else:
                print_error()
            return False

    def list_objects(self, bucket, prefix=''):
        '''Yield every object of the bucket under the given prefix, page by page'''

        if not bucket:
            raise ValueError('No bucket name provided')

        kwargs = {'Bucket': bucket}
        if prefix:
            kwargs['Prefix'] = prefix

        paginator = self.s3_client.get_paginator('list_objects_v2')
        for page in paginator.paginate(**kwargs):
            for obj in page.get('Contents', []):
                yield obj

    def restore_object(self, bucket, key, days=DEFAULT_RESTORE_DAYS, tier=DEFAULT_RESTORE_TIER):
        '''Request a Glacier restore of one object

        Returns "triggered" for a new request and "restoring" when a restore
        of the object is already running. Any other S3 error propagates.
        '''

        try:
            self.s3_client.restore_object(
                Bucket=bucket,
                Key=key,
                RestoreRequest={
                    'Days': days,
                    'GlacierJobParameters': {
                        'Tier': tier
                    }
                }
            )
            return 'triggered'

        except botocore.exceptions.ClientError as e:
            if e.response['Error']['Code'] == 'RestoreAlreadyInProgress':
                return 'restoring'
            raise

    def get_restore_status(self, bucket, key):
        '''Classify the restore state of one object from its headers'''

        try:
            header = self.s3_client.head_object(Bucket=bucket, Key=key)

        except botocore.exceptions.ClientError as e:
            if e.response['Error']['Code'] in ('404', 'NoSuchKey', 'NotFound'):
                return 'missing'
            raise

        # S3 omits the StorageClass header for STANDARD objects
        if header.get('StorageClass') not in GLACIER_STORAGE_CLASSES:
            return 'not_glacier'

        restore = header.get('Restore')
        if not restore:
            return 'archived'
        if 'ongoing-request="true"' in restore:
            return 'restoring'
        if 'ongoing-request="false"' in restore:
            return 'restored'
        return 'archived'

    def upload_file(self, path, bucket, key, storage_class=DEFAULT_STORAGE_CLASS, encryption=DEFAULT_ENCRYPTION):
        '''Upload one local file to the bucket'''

        if not bucket:
            raise ValueError('No bucket name provided')

        try:
            self.s3_client.upload_file(
                Filename=path,
                Bucket=bucket,
                Key=key.replace('\\', '/'),
                ExtraArgs={
                    'StorageClass': storage_class,
                    'ServerSideEncryption': encryption
                }
            )

        except (S3UploadFailedError, botocore.exceptions.ClientError) as e:
            raise UploadFailedError(f'S3 upload of {key} failed: {e}') from e


class Restorer:
    '''Brings objects listed in a key file back out of Glacier'''

    def __init__(self, args: argparse.Namespace, cfg: ConfigManager):
        self.args = args
        self.cfg = cfg

    def read_keys(self, keys_file, invalid=None):
        '''Yield the object keys of the key file, one per line, in file order

        Lines end at "\\n" only, a "\\r" right before it is dropped too.
        Lines that are not valid UTF-8 are reported, appended to the
        invalid list when one is given, and skipped.
        '''

        try:
            f = open(keys_file, 'rb')
        except OSError as e:
            raise KeysFileError(
                f'Cannot read key file {keys_file}: {e.strerror}') from e

        with f:
            for number, line in enumerate(f, start=1):
                if line.endswith(b'\n'):
                    line = line[:-1]
                if line.endswith(b'\r'):
                    line = line[:-1]
                if not line:
                    continue

                try:
                    key = line.decode('utf-8')
                except UnicodeDecodeError:
                    log(f'Error: line {number} of {keys_file} is not valid UTF-8: {line!r}')
                    if invalid is not None:
                        invalid.append(line.decode('utf-8', errors='replace'))
                    continue

                yield key

    def restore(self, keys_file, aws: AWSBoto, bucket, days=DEFAULT_RESTORE_DAYS, tier=DEFAULT_RESTORE_TIER):
        '''Issue one restore request per key, in order, and return a summary'''

        if tier not in RESTORE_TIERS:
            raise InvalidRestoreTierError(
                f'Invalid retrieval tier "{tier}", choose one of: {", ".join(RESTORE_TIERS)}')

        if isinstance(days, bool) or not isinstance(days, int) or days < 1:
            raise ValueError(f'Restore days must be a positive number, got {days!r}')

        summary = {'triggered': [], 'restoring': [], 'failed': []}

        for key in self.read_keys(keys_file, invalid=summary['failed']):
            log(f'Restore {key}')

            try:
                result = aws.restore_object(bucket, key, days=days, tier=tier)

            except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
                log(f'  Restore request for {key} failed: {e}')
                summary['failed'].append(key)
                continue

            if result == 'restoring':
                log(f'  Restore is already in progress for {key}')
            printdbg(key, result)
            summary[result].append(key)

        log(f'\nRestore requests triggered: {len(summary["triggered"])}')
        log(f'Restores already in progress: {len(summary["restoring"])}')
        log(f'Failed requests: {len(summary["failed"])}\n')

        if summary['triggered']:
            log(f'Objects stay readable for {days} days once restored. '
                f'With the {tier} tier this can take hours, check progress with:')
            log(f'    glacierbackup status {keys_file}\n')

        return summary

    def status(self, keys_file, aws: AWSBoto, bucket):
        '''Group the keys of the key file by restore status'''

        status = {
            'restored': [],
            'restoring': [],
            'archived': [],
            'not_glacier': [],
            'missing': [],
            'error': []
        }

        for key in self.read_keys(keys_file, invalid=status['error']):
            try:
                status[aws.get_restore_status(bucket, key)].append(key)

            except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
                printdbg(key, e)
                status['error'].append(key)

        titles = {
            'restored': 'Restored',
            'restoring': 'Restore in progress',
            'archived': 'Archived, no restore requested',
            'not_glacier': 'Not in Glacier',
            'missing': 'Not found',
            'error': 'Could not be checked (access denied or invalid key)'
        }

        for state, keys in status.items():
            if not keys:
                continue
            log(f'\n{titles[state]} ({len(keys)}):')
            for key in keys:
                log(f'    {key}')
        log()

        return status

    def list_objects(self, aws: AWSBoto, bucket, output=DEFAULT_KEYS_FILE, prefix='', glacier_only=False, overwrite=False):
        '''Write the keys of the bucket to the output file, one per line'''

        count = 0
        mode = 'w' if overwrite else 'a'

        with open(output, mode, encoding='utf-8', newline='\n') as f:
            for obj in aws.list_objects(bucket, prefix=prefix):
                if glacier_only and obj.get('StorageClass') not in GLACIER_STORAGE_CLASSES:
                    continue
                f.write(obj['Key'] + '\n')
                count += 1

        log(f'Wrote {count} keys to {output}')

        return count


class Backup:
    '''Uploads the files of a local directory that are not yet in the bucket'''

    def __init__(self, args: argparse.Namespace, cfg: ConfigManager,
                 storage_class=DEFAULT_STORAGE_CLASS, encryption=DEFAULT_ENCRYPTION):

        if storage_class not in STORAGE_CLASSES:
            raise InvalidStorageClassError(
                f'Invalid storage class "{storage_class}", choose one of: {", ".join(STORAGE_CLASSES)}')

        if encryption not in ENCRYPTIONS:
            raise InvalidServerSideEncryptionError(
                f'Invalid server side encryption "{encryption}", choose one of: {", ".join(ENCRYPTIONS)}')

        self.args = args
        self.cfg = cfg
        self.storage_class = storage_class
        self.encryption = encryption

    @staticmethod
    def expand_path(path):
        if not path:
            raise InvalidPathError('Could not parse path')
        return os.path.expanduser(os.fspath(path))

    @staticmethod
    def split_key(name):
        return name.replace('\\', '/').split('/')

    @staticmethod
    def strip_path(path, root):
        '''Return path relative to root with "/" separators, None when outside root'''

        relative = os.path.relpath(path, root)
        if relative == os.curdir or relative == os.pardir or relative.startswith(os.pardir + os.sep):
            log(f'Error: Failed to parse path {path}: not under {root}')
            return None

        return '/'.join(relative.split(os.sep))

    def fetch_existing_objects(self, aws: AWSBoto, bucket):
        '''Return the keys already in the bucket'''

        try:
            return {'/'.join(self.split_key(obj['Key']))
                    for obj in aws.list_objects(bucket)}

        except (botocore.exceptions.ClientError, botocore.exceptions.BotoCoreError) as e:
            raise FileFetchFailedError(
                f'Failed to retrieve data from server: {e}') from e

    def _walkerr(self, oserr):
        log(f'Warning: Unable to read {oserr.filename}: {oserr.strerror}')

    def sync(self, root, aws: AWSBoto, bucket):
        '''Upload every file under root that is missing from the bucket'''

        root = self.expand_path(root)

        if not os.path.isdir(root):
            raise InvalidPathError(f'{root} is not a directory')

        existing_files = self.fetch_existing_objects(aws, bucket)
        log(f'Found {len(existing_files)} objects')

        uploaded = []
        skipped = []

        for dirpath, dirnames, filenames in os.walk(root, onerror=self._walkerr):
            dirnames.sort()
            printdbg(f'Diving into directory: {dirpath}')

            for filename in sorted(filenames):
                path = os.path.join(dirpath, filename)

                if not os.path.isfile(path):
                    log(f'Warning: Unable to read the metadata for {path}')
                    continue

                key = self.strip_path(path, root)
                if key is None:
                    continue

                if key in existing_files:
                    log(f'Skipping existing file: {key}')
                    skipped.append(key)
                    continue

                log(f'Uploading new file: {key}')
                existing_files.add(key)

                try:
                    aws.upload_file(path, bucket, key,
                                    storage_class=self.storage_class,
                                    encryption=self.encryption)
                except OSError as e:
                    log(f'Error: Failed to read file {key}: {e.strerror}')
                    continue

                uploaded.append(key)

        log(f'\nAll directories synced: {len(uploaded)} uploaded, {len(skipped)} skipped\n')

        return uploaded, skipped


class Commands:

    def __init__(self):
        '''Initialize Commands object'''

        # parse arguments using python's internal module argparse.py
        self.parser = self.parse_arguments()
        self.args = self.parser.parse_args()

        if self.args.debug or self.args.log_print:
            os.environ['DEBUG'] = '1'

    def print_help(self):
        '''Print help message'''

        self.parser.print_help()
        return True

    def print_version(self):
        '''Print glacierbackup version'''

        log(f'glacierbackup v{get_version()}')

    def print_info(self, cfg: ConfigManager):
        '''Print glacierbackup info'''

        log(f'\nFILES')
        log(f'\n    Configuration: {cfg.config_file}')
        log(f'    Log: {logger}')

        log(f'\nTOOLS')
        log(f'\n  glacierbackup')
        log(f'    version: v{get_version()}')
        log(f'    path: {shutil.which("glacierbackup")}')

        log(f'\n  boto3')
        log(f'    version: v{boto3.__version__}')

        log(f'\n  python')
        log(f'    version: v{platform.python_version()}')
        log(f'    path: {sys.executable}')

    def _get_bucket(self, cfg: ConfigManager):
        bucket = self.args.bucket or cfg.bucket_name
        if not bucket:
            log('\nError: No bucket given. Use --bucket or configure one with the command:')
            log('    glacierbackup config\n')
        return bucket

    def subcmd_config(self, cfg: ConfigManager):
        '''Configure a glacierbackup profile'''

        try:
            if self.args.print:
                return cfg.print_config()

            if not cfg.set_profile():
                return False
            if not cfg.set_s3():
                return False
            if not cfg.set_backup():
                return False
            if not cfg.set_restore():
                return False

            log(f'\n*** CONFIGURATION SAVED at {cfg.config_file} ***\n')
            return True

        except Exception:
            print_error()
            return False

    def subcmd_credentials(self, cfg: ConfigManager, aws: AWSBoto):
        '''Check AWS credentials'''

        if aws.check_credentials(prints=True):
            return True

        log(f'\nYou can configure the credentials using the command:')
        log(f'    glacierbackup config\n')
        return False

    def subcmd_list(self, cfg: ConfigManager, restorer: Restorer, aws: AWSBoto):
        '''Write the keys of the bucket to a key file'''

        try:
            bucket = self._get_bucket(cfg)
            if not bucket:
                return False

            restorer.list_objects(aws, bucket,
                                  output=self.args.output,
                                  prefix=self.args.prefix,
                                  glacier_only=self.args.glacier_only,
                                  overwrite=self.args.overwrite)
            return True

        except Exception:
            print_error()
            return False

    def subcmd_restore(self, cfg: ConfigManager, restorer: Restorer, aws: AWSBoto):
        '''Request a Glacier restore for every key of the key file'''

        try:
            bucket = self._get_bucket(cfg)
            if not bucket:
                return False

            days = self.args.days if self.args.days is not None else cfg.restore_days
            tier = self.args.tier or cfg.restore_tier

            summary = restorer.restore(self.args.keys_file, aws, bucket,
                                       days=days, tier=tier)

            return not summary['failed']

        except (BackupError, ValueError) as e:
            log(f'\nError: {e}\n')
            return False

        except Exception:
            print_error()
            return False

    def subcmd_status(self, cfg: ConfigManager, restorer: Restorer, aws: AWSBoto):
        '''Print the restore status of every key of the key file'''

        try:
            bucket = self._get_bucket(cfg)
            if not bucket:
                return False

            restorer.status(self.args.keys_file, aws, bucket)
            return True

        except BackupError as e:
            log(f'\nError: {e}\n')
            return False

        except Exception:
            print_error()
            return False

    def subcmd_backup(self, cfg: ConfigManager, aws: AWSBoto):
        '''Upload new files of a local directory'''

        try:
            bucket = self._get_bucket(cfg)
            if not bucket:
                return False

            backup = Backup(self.args, cfg,
                            storage_class=self.args.storage_class or cfg.storage_class,
                            encryption=self.args.encryption or cfg.encryption)

            backup.sync(self.args.path, aws, bucket)
            return True

        except BackupError as e:
            log(f'\nError: Failed to sync directories: {e}\n')
            return False

        except Exception:
            print_error()
            return False

    def subcmd_update(self, mute_no_update):
        '''Check if an update is available'''

        try:
            response = requests.get(PYPI_URL, timeout=10)

            if response.status_code != 200:
                if not mute_no_update:
                    log(f'Note: Could not check for updates ({response.status_code})')
                return False

            latest = response.json()['info']['version']
            current = get_version()

            if compare_versions(latest, current) > 0:
                log(f'\nA glacierbackup update is available!')
                log(f'  Current version: glacierbackup v{current}')
                log(f'  Latest version: glacierbackup v{latest}')
                log(f'\nYou can update glacierbackup using the command:')
                log(f'    python3 -m pip install --upgrade glacierbackup\n')
            else:
                if not mute_no_update:
                    log(f'\nglacierbackup is up to date: glacierbackup v{current}\n')

            return True

        except requests.exceptions.RequestException as e:
            if not mute_no_update:
                log(f'Note: Could not check for updates: {e}')
            return False

    def parse_arguments(self):
        '''Gather and parse command-line arguments'''

        parser = argparse.ArgumentParser(prog='glacierbackup ',
                                         description='Back up a directory tree to S3 cold storage and restore objects from Glacier')

        # ***

        parser.add_argument('-d', '--debug', dest='debug', action='store_true',
                            help="verbose output for all commands")

        parser.add_argument('-i', '--info', dest='info', action='store_true',
                            help='print glacierbackup and packages info')

        parser.add_argument('-l', '--log-print', dest='log_print', action='store_true',
                            help='Print the log file to the screen')

        parser.add_argument('-p', '--profile', dest='profile', action='store', default='',
                            help='Use this profile for the current session')

        parser.add_argument('-v', '--version', dest='version', action='store_true',
                            help='print glacierbackup version')

        subparsers = parser.add_subparsers(
            dest="subcmd", help='sub-command help')

        # ***

        parser_config = subparsers.add_parser('config', aliases=['cnf'],
                                              description=textwrap.dedent(f'''
                glacierbackup configuration. This command will guide you through the
                configuration of a profile: bucket, region, credentials, storage class
                and restore defaults.
            '''), formatter_class=argparse.RawTextHelpFormatter)

        parser_config.add_argument('-p', '--print', dest='print', action='store_true',
                                   help="Print the current configuration")

        # ***

        subparsers.add_parser('credentials', aliases=['crd'],
                              description=textwrap.dedent(f'''
                Check the current profile has valid credentials.
            '''), formatter_class=argparse.RawTextHelpFormatter)

        # ***

        parser_list = subparsers.add_parser('list', aliases=['ls'],
                                            description=textwrap.dedent(f'''
                List the object keys of the bucket and append them to a key file,
                one key per line, ready for "glacierbackup restore".
            '''), formatter_class=argparse.RawTextHelpFormatter)

        parser_list.add_argument('-b', '--bucket', dest='bucket', action='store', default='',
                                 help='Bucket to list (default: bucket of the profile)')

        parser_list.add_argument('-o', '--output', dest='output', action='store', default=DEFAULT_KEYS_FILE,
                                 help=f'Key file to write (default={DEFAULT_KEYS_FILE})')

        parser_list.add_argument('-x', '--prefix', dest='prefix', action='store', default='',
                                 help='Only list keys starting with this prefix')

        parser_list.add_argument('-g', '--glacier-only', dest='glacier_only', action='store_true',
                                 help='Only list objects stored in GLACIER or DEEP_ARCHIVE')

        parser_list.add_argument('-w', '--overwrite', dest='overwrite', action='store_true',
                                 help='Overwrite the key file instead of appending to it')

        # ***

        parser_restore = subparsers.add_parser('restore', aliases=['rst'],
                                               description=textwrap.dedent(f'''
                Request a Glacier restore for every key of the key file, one after
                the other and in file order. A failed request does not stop the run.
            '''), formatter_class=argparse.RawTextHelpFormatter)

        parser_restore.add_argument('keys_file', action='store', default=DEFAULT_KEYS_FILE, nargs='?',
                                    help=f'File with one object key per line (default={DEFAULT_KEYS_FILE})')

        parser_restore.add_argument('-b', '--bucket', dest='bucket', action='store', default='',
                                    help='Bucket holding the objects (default: bucket of the profile)')

        parser_restore.add_argument('-t', '--days', dest='days', type=int, default=None,
                                    help=f'Days the restored copies stay readable (default={DEFAULT_RESTORE_DAYS})')

        parser_restore.add_argument('-r', '--tier', dest='tier', action='store', default=None,
                                    choices=RESTORE_TIERS,
                                    help=f'Glacier retrieval tier (default={DEFAULT_RESTORE_TIER})')

        # ***

        parser_status = subparsers.add_parser('status', aliases=['st'],
                                              description=textwrap.dedent(f'''
                Show how far the restore of every key of the key file has come.
            '''), formatter_class=argparse.RawTextHelpFormatter)

        parser_status.add_argument('keys_file', action='store', default=DEFAULT_KEYS_FILE, nargs='?',
                                   help=f'File with one object key per line (default={DEFAULT_KEYS_FILE})')

        parser_status.add_argument('-b', '--bucket', dest='bucket', action='store', default='',
                                   help='Bucket holding the objects (default: bucket of the profile)')

        # ***

        parser_backup = subparsers.add_parser('backup', aliases=['bak'],
                                              description=textwrap.dedent(f'''
                Upload every file of a local directory tree that is not yet in the
                bucket. Object keys are the paths relative to the directory.
            '''), formatter_class=argparse.RawTextHelpFormatter)

        parser_backup.add_argument('path', action='store',
                                   help='Directory to back up')

        parser_backup.add_argument('-b', '--bucket', dest='bucket', action='store', default='',
                                   help='Bucket to store data in (default: bucket of the profile)')

        parser_backup.add_argument('-s', '--storage-class', dest='storage_class', action='store', default=None,
                                   choices=STORAGE_CLASSES,
                                   help=f'Storage class of the uploaded files (default={DEFAULT_STORAGE_CLASS})')

        parser_backup.add_argument('-e', '--encryption', dest='encryption', action='store', default=None,
                                   choices=ENCRYPTIONS,
                                   help=f'Server side encryption of the uploaded files (default={DEFAULT_ENCRYPTION})')

        # ***

        subparsers.add_parser('update', aliases=['upd'],
                              description=textwrap.dedent(f'''
                Check if a newer glacierbackup release is available.
            '''), formatter_class=argparse.RawTextHelpFormatter)

        return parser


def get_version():
    try:
        return metadata.version('glacierbackup')
    except metadata.PackageNotFoundError:
        return '0.0.0'


def compare_versions(version1, version2):
    v1 = [int(v) for v in version1.split(".") if v.isdigit()]
    v2 = [int(v) for v in version2.split(".") if v.isdigit()]

    for i in range(max(len(v1), len(v2))):
        v1_part = v1[i] if i < len(v1) else 0
        v2_part = v2[i] if i < len(v2) else 0
        if v1_part != v2_part:
            return v1_part - v2_part
    return 0


def printdbg(*args, **kwargs):
    if os.environ.get('DEBUG') == '1':

        current_frame = inspect.currentframe()
        calling_function = current_frame.f_back.f_code.co_name
        log(f' DBG {calling_function}():', args, kwargs)


def clean_path(path):
    if path:
        return os.path.realpath(os.path.expanduser(path).rstrip(os.path.sep))
    else:
        return path


def get_caller_line():
    frame = inspect.currentframe()
    caller_frame = frame.f_back
    line_number = caller_frame.f_lineno
    return line_number


def get_caller_function():
    frame = inspect.currentframe()
    caller_frame = frame.f_back
    caller_name = caller_frame.f_code.co_name
    return caller_name


def print_error(msg: str = None):
    exc_type, exc_value, exc_tb = sys.exc_info()

    if exc_tb is None:
        # Printing error message but no error raised from the code
        function_name = get_caller_function()
        line = get_caller_line()
        file_name = os.path.split(__file__)[1]
        error_code = 1

    else:
        traceback_details = traceback.extract_tb(exc_tb)

        # Last call stack, the third element in the tuple is the function name
        function_name = traceback_details[-1][2]
        file_name = os.path.split(traceback_details[-1][0])[1]
        line = traceback_details[-1][1]

        if hasattr(exc_value, 'errno'):
            error_code = exc_value.errno
        else:
            error_code = ''

    log('\nError')
    log('  File:', file_name)
    log('  Function:', function_name)
    log('  Line:', line)
    log('  Error code:', error_code)
    log('  Exception type:', exc_type)
    log('  Exception value:', exc_value)

    if (msg):
        log('  Error message:', msg)

    if exc_type is PermissionError:
        log(f'\nCheck the permissions of the files and folders involved.')


def log(*args, **kwargs):

    try:
        print(*args, **kwargs)

        if logger and os.environ.get('DEBUG') == '1':
            logger_dir = os.path.dirname(logger)
            os.makedirs(logger_dir, exist_ok=True, mode=0o775)

            with open(logger, 'a') as f:
                print(*args, **kwargs, file=f)
        return True

    except OSError:
        return False


def print_log():

    if logger and os.environ.get('DEBUG') == '1':

        if os.path.exists(logger):
            with open(logger, 'r') as f:
                contents = f.read()
                print(contents)
        else:
            print("\nNo log file found\n")


def main():

    try:
        cmd = Commands()
        args = cmd.args

        if args.profile:
            cfg = ConfigManager(args.profile)
        else:
            cfg = ConfigManager()

        restorer = Restorer(args, cfg)
        aws = AWSBoto(args, cfg)

        # If no arguments, then print help
        if len(sys.argv) == 1:
            cmd.print_help()
            sys.exit(1)

        if args.version:
            cmd.print_version()
            sys.exit(0)

        if args.info:
            cmd.print_info(cfg)
            sys.exit(0)

        if args.log_print:
            print_log()
            sys.exit(0)

        if hasattr(args, 'path'):
            args.path = clean_path(args.path)

        # CLI commands that do NOT need credentials
        if args.subcmd in ['config', 'cnf']:
            res = cmd.subcmd_config(cfg)
        elif args.subcmd in ['credentials', 'crd']:
            res = cmd.subcmd_credentials(cfg, aws)
        elif args.subcmd in ['update', 'upd']:
            cfg.check_update()
            res = cmd.subcmd_update(mute_no_update=False)
        elif args.subcmd in ['list', 'ls', 'restore', 'rst', 'status', 'st', 'backup', 'bak']:

            if not aws.check_credentials():
                log(f'\nError: Invalid credentials.')
                log(f'  Profile: {cfg.profile}')
                log(f'  Credentials: {cfg.credentials or "default"}')
                log(f'  Endpoint: {cfg.endpoint}\n')
                log(f'\nYou can configure the credentials using the command:')
                log(f'    glacierbackup config\n')
                sys.exit(1)

            # CLI commands that need credentials
            if args.subcmd in ['list', 'ls']:
                res = cmd.subcmd_list(cfg, restorer, aws)
            elif args.subcmd in ['restore', 'rst']:
                res = cmd.subcmd_restore(cfg, restorer, aws)
            elif args.subcmd in ['status', 'st']:
                res = cmd.subcmd_status(cfg, restorer, aws)
            else:
                res = cmd.subcmd_backup(cfg, aws)
        else:
            res = cmd.print_help()

        aws.close_session()

        # Check if there are updates every week
        if args.subcmd not in ['update', 'upd'] and cfg.check_update():
            cmd.subcmd_update(mute_no_update=True)

        if not res:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\nOperation cancelled by user. Exiting...\n")
        sys.exit(1)


if __name__ == "__main__":
    main()
