"""
Provides the starter files written into the draft of every new function.
"""
from function_engine.interfaces.template_interface import TemplateFile, TemplateProviderInterface
from function_engine.utils.folders import ENV_FILE_NAME, INDEX_FILE_NAME, SOURCE_FOLDER
from typing import List

INDEX_TEMPLATE = '''import os


def handler(event, context):
    """Entry point of the function.

    event: the JSON payload the function was executed with
    context: information about the running function version
    """
    name = (event or {}).get("name", "world")
    return {"message": f"Hello, {name}!", "stage": os.environ.get("STAGE", "draft")}
'''

ENV_TEMPLATE = '''# Environment variables available to the function through os.environ
# STAGE=draft
'''

class StarterTemplateProvider(TemplateProviderInterface):
    def get_files(self) -> List[TemplateFile]:
        return [TemplateFile(path='', name=ENV_FILE_NAME, content=ENV_TEMPLATE),
                TemplateFile(path=SOURCE_FOLDER, name=INDEX_FILE_NAME, content=INDEX_TEMPLATE)]
