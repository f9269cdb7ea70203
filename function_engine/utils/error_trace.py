"""
Best-effort classification of a worker's stderr output.

Used only when the worker did not answer on its structured channel. The first
line containing "Error: " names the error: the type is the text before the first
":", the message the text after the first ": ".
"""
from function_engine.models.execution_result import ExecutionError

ERROR_MARKER = 'Error: '

def parse_error_trace(stderr: str) -> ExecutionError:
    stack_trace = [line for line in stderr.split('\n') if line.strip() != '']
    error_trace = next((line for line in stack_trace if ERROR_MARKER in line), None)

    error_type = 'Unknown'
    error_message = ''
    if error_trace:
        error_type = error_trace.split(':')[0].strip()
        error_message = error_trace.split(': ', 1)[1]

    return ExecutionError(error_type=error_type,
                          error_message=error_message,
                          stack_trace=stack_trace)
