"""GraphQL documents sent to ``beans graphql``."""

BEAN_FIELDS = (
    "id slug path title body status type priority tags parentId "
    "blockingIds blockedByIds createdAt updatedAt etag"
)

LIST_BEANS_QUERY = f"""
  query($filter: BeanFilter) {{
    beans(filter: $filter) {{ {BEAN_FIELDS} }}
  }}
"""

CREATE_BEAN_MUTATION = f"""
  mutation($input: CreateBeanInput!) {{
    createBean(input: $input) {{ {BEAN_FIELDS} }}
  }}
"""

UPDATE_BEAN_MUTATION = f"""
  mutation($id: ID!, $input: UpdateBeanInput!) {{
    updateBean(id: $id, input: $input) {{ {BEAN_FIELDS} }}
  }}
"""

DELETE_BEAN_MUTATION = """
  mutation($id: ID!) {
    deleteBean(id: $id)
  }
"""
