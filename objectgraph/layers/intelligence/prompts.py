"""
Prompt templates for oracle calls.

Templates are LangChain ``ChatPromptTemplate`` strings: every dynamic part,
the system instruction included, is passed as a variable so payload braces
are never parsed as template fields.
"""

CLASSIFY_FUNCTION_NAME = "predictObjectTypeBeingReferenced"
EXTRACT_FUNCTION_NAME = "processDataUsingGivenObjectsMetadataStructure"
PARENT_FUNCTION_NAME = "predictObjectParent"

UNKNOWN_OBJECT_TYPE = "unknown"

EXTRACT_FUNCTION_DESCRIPTION = (
    "Given some data, process it to extract data that matches a given metadata structure. "
    "Typically used on data being passed in to be then stored in the database."
)


CLASSIFY_USER_TEMPLATE = """You MUST call the '{function_name}' function to decide which object type the following data most likely relates to.

## Object types that can be chosen from:
{object_types}

## Data to review:
{payload}"""


EXTRACT_USER_TEMPLATE = """You MUST call the '{function_name}' function to process the following data:
{payload}

To help, the object type you will be creating is called {type_name}, and its description is: {type_description}.{guidance}"""


GUIDANCE_SUFFIX = """

To help, here's some context about the data:
{data_description}"""


MERGE_USER_TEMPLATE = """You MUST call the '{function_name}' function to update a given object considering new data.
Produce one coherent object: keep what is still true of the existing object, incorporate what the new data adds,
and reconcile values that conflict rather than simply overwriting them.

## Existing object's data:
{existing}

## New data:
{incoming}"""


PARENT_USER_TEMPLATE = """You MUST call the '{function_name}' function to decide which object of type {parent_type_id} is the most appropriate parent for the given object.

## Object that needs a parent:
{target}

## Objects that can be chosen from:
{candidates}"""


STORED_DATA_MARKER = "Data that has just been stored:"

ANALYSIS_USER_TEMPLATE = """{analysis_instruction}

The data belongs to this organisation:
{organisation}

For context, signals are described as:
{signal_description}

For context, jobs are described as:
{job_description}

Data that has just been stored:
{record}"""
