#!/usr/bin/env python3
"""
Test runner for Outlook Folder Exporter unit tests
"""

import unittest
import sys
import os

# Add the parent directory to the path so we can import the exporter modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

# Test modules by short name
TEST_MODULES = {
    'tree': 'test_unit_folder_tree',
    'messages': 'test_unit_message_exporter',
    'graph': 'test_unit_mail_directory',
    'archive': 'test_unit_ews_archive',
    'render': 'test_unit_email_renderer',
    'content': 'test_unit_content_processor',
    'output': 'test_unit_output_writer',
    'exporter': 'test_unit_email_exporter',
    'oauth': 'test_unit_outlook_oauth',
}


def run_all_tests():
    """Run all unit tests"""
    loader = unittest.TestLoader()
    suite = unittest.TestSuite()

    for module_name in TEST_MODULES.values():
        suite.addTests(loader.loadTestsFromName(module_name))

    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)
    return result.wasSuccessful()


def run_specific_test(test_name):
    """Run the tests of one module"""
    if test_name not in TEST_MODULES:
        print(f"Unknown test name: {test_name}")
        print(f"Available tests: {', '.join(TEST_MODULES)}")
        return False

    suite = unittest.TestLoader().loadTestsFromName(TEST_MODULES[test_name])
    runner = unittest.TextTestRunner(verbosity=2)
    result = runner.run(suite)
    return result.wasSuccessful()


if __name__ == '__main__':
    if len(sys.argv) > 1:
        success = run_specific_test(sys.argv[1])
    else:
        success = run_all_tests()

    sys.exit(0 if success else 1)
