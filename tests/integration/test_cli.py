"""
End-to-end tests for the catalog-sync command line.

The offline services are used so no network access is needed: with
``sync-without-translate`` every translation equals the text it was made from,
which makes it visible whether a value came from the source or from an
override source.
"""
import os
import shutil
import tempfile
import textwrap
import unittest
from unittest.mock import patch

import polib

from catalog_sync.cli import build_parser, main

EN_PO = textwrap.dedent('''\
    msgid ""
    msgstr ""
    "Content-Type: text/plain; charset=UTF-8\\n"
    "Language: en\\n"

    #. @manual:zh-Hans
    msgid "Acme Corp"
    msgstr "Acme Corp"

    #. @context:Toolbar button
    msgid "Save"
    msgstr "Save"

    msgid "Open"
    msgstr "Open"
''')

ZH_HANS_PO = textwrap.dedent('''\
    msgid ""
    msgstr ""
    "Content-Type: text/plain; charset=UTF-8\\n"
    "Language: zh-Hans\\n"

    msgid "Acme Corp"
    msgstr "艾克米公司"

    msgid "Save"
    msgstr "保存"
''')


class TestCli(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.locale_dir = tempfile.mkdtemp()
        self.src_file = os.path.join(self.locale_dir, 'en.po')
        self._write('en.po', EN_PO)

        patches = [
            patch('catalog_sync.app_config._load_dotenv_files', return_value=None),
            patch.dict(os.environ, {'TRANSLATOR_CONFIG_FILE': os.path.join(self.locale_dir, 'none.yaml')},
                       clear=True),
        ]
        for p in patches:
            p.start()
            self.addCleanup(p.stop)

    def tearDown(self):
        shutil.rmtree(self.locale_dir)

    def _write(self, name, content):
        with open(os.path.join(self.locale_dir, name), 'w', encoding='utf-8') as f:
            f.write(content)

    def _target(self, lng):
        return os.path.join(self.locale_dir, f'{lng}.po')

    def _entries(self, lng):
        return {e.msgid: e.msgstr for e in polib.pofile(self._target(lng))}

    async def _run(self, lng, *extra):
        argv = [
            '--src-file', self.src_file, '--src-lng', 'en', '--src-format', 'po',
            '--target-file', self._target(lng), '--target-lng', lng, '--target-format', 'po',
            '--service', 'sync-without-translate',
            *extra,
        ]
        return await main(argv)

    async def test_first_run_creates_target_and_copies_manual_keys(self):
        self.assertEqual(await self._run('de'), 0)
        self.assertEqual(self._entries('de'), {'Acme Corp': 'Acme Corp', 'Save': 'Save', 'Open': 'Open'})
        self.assertEqual(polib.pofile(self._target('de')).metadata['Language'], 'de')

    async def test_second_run_leaves_target_untouched(self):
        await self._run('de')
        with patch('catalog_sync.cli.write_tfile') as mock_write:
            self.assertEqual(await self._run('de'), 0)
        mock_write.assert_not_called()

    async def test_manual_language_is_skipped(self):
        await self._run('zh-Hans')
        self.assertEqual(list(self._entries('zh-Hans')), ['Save', 'Open'])

    async def test_override_source_is_used_for_manual_keys(self):
        self._write('zh-Hans.po', ZH_HANS_PO)
        await self._run('zh-Hant', '--source-override', 'zh-Hant:zh-Hans')
        entries = self._entries('zh-Hant')
        self.assertEqual(entries['Acme Corp'], '艾克米公司')
        # Unmarked keys are still translated from the primary source
        self.assertEqual(entries['Save'], 'Save')

    async def test_missing_override_file_falls_back_to_original(self):
        self.assertEqual(await self._run('zh-Hant', '--source-override', 'zh-Hant:zh-Hans'), 0)
        self.assertEqual(self._entries('zh-Hant')['Acme Corp'], 'Acme Corp')

    async def test_stale_keys_are_removed_and_existing_values_kept(self):
        self._write('fr.po', textwrap.dedent('''\
            msgid "Open"
            msgstr "Ouvrir"

            msgid "Removed"
            msgstr "Supprimé"
        '''))
        await self._run('fr')
        entries = self._entries('fr')
        self.assertEqual(entries['Open'], 'Ouvrir')
        self.assertNotIn('Removed', entries)
        self.assertEqual([e.msgid for e in polib.pofile(self._target('fr'))], ['Acme Corp', 'Save', 'Open'])

    async def test_missing_credential_aborts_without_writing(self):
        argv = [
            '--src-file', self.src_file, '--src-lng', 'en', '--src-format', 'po',
            '--target-file', self._target('de'), '--target-lng', 'de', '--target-format', 'po',
            '--service', 'openai',
        ]
        self.assertEqual(await main(argv), 1)
        self.assertFalse(os.path.exists(self._target('de')))

    async def test_empty_source_aborts(self):
        self._write('en.po', 'msgid ""\nmsgstr ""\n"Language: en\\n"\n')
        self.assertEqual(await self._run('de'), 1)
        self.assertFalse(os.path.exists(self._target('de')))

    async def test_corrupt_target_aborts(self):
        self._write("de.po", "this is not a po file\n")
        self.assertEqual(await self._run('de'), 1)

    async def test_unexpected_error_exits_with_status_1(self):
        with patch('catalog_sync.cli.translate_core', side_effect=RuntimeError('backend exploded')), \
                patch('catalog_sync.app_config.setup_logger'), \
                self.assertLogs('catalog_sync', level='CRITICAL') as logs:
            self.assertEqual(await self._run('de'), 1)
        self.assertIn('backend exploded', logs.output[0])
        self.assertFalse(os.path.exists(self._target('de')))


class TestParser(unittest.TestCase):
    def test_rejects_unknown_format(self):
        with self.assertRaises(SystemExit):
            build_parser().parse_args([
                '--src-file', 'en.x', '--src-lng', 'en', '--src-format', 'xliff',
                '--target-file', 'de.x', '--target-lng', 'de', '--target-format', 'po',
            ])

    def test_service_config_maps_to_api_key(self):
        args = build_parser().parse_args([
            '--src-file', 'en.po', '--src-lng', 'en', '--src-format', 'po',
            '--target-file', 'de.po', '--target-lng', 'de', '--target-format', 'po',
            '--service-config', 'sk-123',
        ])
        self.assertEqual(args.api_key, 'sk-123')
        self.assertIsNone(args.debug)


if __name__ == '__main__':
    unittest.main()
